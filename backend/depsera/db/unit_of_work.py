"""Unit of work for grouping CRUD calls into one transaction."""

from types import TracebackType
from typing import Optional, Type

from sqlalchemy.ext.asyncio import AsyncSession


class UnitOfWork:
    """Explicit transaction boundary over an AsyncSession.

    CRUD methods that receive a ``uow`` only flush; the caller commits once at the end.
    Leaving the block without ``commit()`` (or with an exception) rolls back.
    """

    def __init__(self, session: AsyncSession):
        """Wrap a session."""
        self.session = session
        self._committed = False

    async def __aenter__(self) -> "UnitOfWork":
        self._committed = False
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        if exc_type is not None or not self._committed:
            await self.rollback()

    async def commit(self) -> None:
        """Commit the transaction."""
        await self.session.commit()
        self._committed = True

    async def flush(self) -> None:
        """Flush pending changes without committing."""
        await self.session.flush()

    async def rollback(self) -> None:
        """Roll back the transaction."""
        await self.session.rollback()
