"""CRUD operations for dependencies (read-only for the manifest engine)."""

from typing import Optional
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from depsera.models.dependency import Dependency


class CRUDDependency:
    """Lookups on polled dependencies."""

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = Dependency

    async def get_by_service_and_name(
        self,
        db: AsyncSession,
        service_id: UUID,
        name: str,
    ) -> Optional[Dependency]:
        """Find a service's dependency by reported or canonical name.

        An exact match on the reported name wins over a canonical-name match.

        Args:
            db: Database session
            service_id: Owning service ID
            name: Reported or canonical dependency name

        Returns:
            Dependency if found, None otherwise
        """
        result = await db.execute(
            select(self.model)
            .where(
                and_(
                    self.model.service_id == service_id,
                    or_(self.model.name == name, self.model.canonical_name == name),
                )
            )
            .order_by((self.model.name == name).desc())
        )
        return result.scalars().first()


dependency = CRUDDependency()
