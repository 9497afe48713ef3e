"""CRUD operations for dependency aliases."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from depsera.db.unit_of_work import UnitOfWork
from depsera.models.dependency_alias import DependencyAlias


class CRUDDependencyAlias:
    """CRUD operations for dependency aliases."""

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = DependencyAlias

    async def get(self, db: AsyncSession, id: UUID) -> Optional[DependencyAlias]:
        """Get an alias by ID."""
        result = await db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_manifest_managed(
        self, db: AsyncSession, team_id: UUID
    ) -> List[DependencyAlias]:
        """Get the aliases a team's manifest owns.

        Args:
            db: Database session
            team_id: Team ID

        Returns:
            List of manifest-managed aliases scoped to the team
        """
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.manifest_team_id == team_id,
                    self.model.manifest_managed.is_(True),
                )
            )
        )
        return list(result.scalars().all())

    async def create(
        self,
        db: AsyncSession,
        *,
        obj_in: Dict[str, Any],
        uow: Optional[UnitOfWork] = None,
    ) -> DependencyAlias:
        """Create an alias."""
        db_obj = self.model(**obj_in)
        db.add(db_obj)

        if uow:
            await uow.flush()
        else:
            await db.commit()
            await db.refresh(db_obj)

        return db_obj

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: DependencyAlias,
        obj_in: Dict[str, Any],
        uow: Optional[UnitOfWork] = None,
    ) -> DependencyAlias:
        """Update an alias in place."""
        for field, value in obj_in.items():
            setattr(db_obj, field, value)
        db.add(db_obj)

        if uow:
            await uow.flush()
        else:
            await db.commit()
            await db.refresh(db_obj)

        return db_obj

    async def remove(
        self,
        db: AsyncSession,
        *,
        id: UUID,
        uow: Optional[UnitOfWork] = None,
    ) -> bool:
        """Delete an alias.

        Returns:
            True if deleted, False if not found
        """
        db_obj = await self.get(db, id=id)
        if not db_obj:
            return False

        await db.delete(db_obj)

        if uow:
            await uow.flush()
        else:
            await db.commit()

        return True


dependency_alias = CRUDDependencyAlias()
