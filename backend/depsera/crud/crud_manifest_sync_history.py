"""CRUD operations for manifest sync history."""

from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from depsera.db.unit_of_work import UnitOfWork
from depsera.models.manifest_sync_history import ManifestSyncHistory


class CRUDManifestSyncHistory:
    """Append-only access to sync history. Entries are never updated."""

    DEFAULT_LIMIT = 20
    MAX_LIMIT = 100

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = ManifestSyncHistory

    async def get(self, db: AsyncSession, id: UUID) -> Optional[ManifestSyncHistory]:
        """Get a history entry by ID."""
        result = await db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_by_team(
        self,
        db: AsyncSession,
        team_id: UUID,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[ManifestSyncHistory], int]:
        """Get a page of a team's history, newest first.

        Args:
            db: Database session
            team_id: Team ID
            limit: Page size (default 20, capped at 100)
            offset: Rows to skip

        Returns:
            Tuple of (entries, total entries for the team)
        """
        limit = min(limit or self.DEFAULT_LIMIT, self.MAX_LIMIT)
        offset = max(offset, 0)

        total = await db.scalar(
            select(func.count()).select_from(self.model).where(self.model.team_id == team_id)
        )
        result = await db.execute(
            select(self.model)
            .where(self.model.team_id == team_id)
            .order_by(self.model.created_at.desc(), self.model.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total or 0

    async def get_latest(self, db: AsyncSession, team_id: UUID) -> Optional[ManifestSyncHistory]:
        """Get a team's most recent run."""
        entries, _ = await self.get_by_team(db, team_id, limit=1)
        return entries[0] if entries else None

    async def create(
        self,
        db: AsyncSession,
        *,
        obj_in: dict,
        uow: Optional[UnitOfWork] = None,
    ) -> ManifestSyncHistory:
        """Append a history entry.

        Args:
            db: Database session
            obj_in: Column values; may include a pre-allocated ``id``
            uow: Optional unit of work for transaction control

        Returns:
            Created history entry
        """
        db_obj = self.model(**obj_in)
        db.add(db_obj)

        if uow:
            await uow.flush()
        else:
            await db.commit()
            await db.refresh(db_obj)

        return db_obj

    async def delete_older_than(
        self,
        db: AsyncSession,
        *,
        cutoff: datetime,
        uow: Optional[UnitOfWork] = None,
    ) -> int:
        """Delete entries created before the cutoff (retention cleanup).

        Returns:
            Number of rows deleted
        """
        result = await db.execute(delete(self.model).where(self.model.created_at < cutoff))

        if uow:
            await uow.flush()
        else:
            await db.commit()

        return result.rowcount


manifest_sync_history = CRUDManifestSyncHistory()
