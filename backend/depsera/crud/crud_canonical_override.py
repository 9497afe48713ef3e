"""CRUD operations for canonical overrides."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from depsera.db.unit_of_work import UnitOfWork
from depsera.models.canonical_override import CanonicalOverride


class CRUDCanonicalOverride:
    """CRUD operations for canonical overrides."""

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = CanonicalOverride

    async def get(self, db: AsyncSession, id: UUID) -> Optional[CanonicalOverride]:
        """Get an override by ID."""
        result = await db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_manifest_managed(
        self, db: AsyncSession, team_id: UUID
    ) -> List[CanonicalOverride]:
        """Get the overrides a team's manifest owns.

        Args:
            db: Database session
            team_id: Team ID

        Returns:
            List of manifest-managed overrides scoped to the team
        """
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.team_id == team_id,
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
    ) -> CanonicalOverride:
        """Create an override."""
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
        db_obj: CanonicalOverride,
        obj_in: Dict[str, Any],
        uow: Optional[UnitOfWork] = None,
    ) -> CanonicalOverride:
        """Update an override in place."""
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
        """Delete an override.

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


canonical_override = CRUDCanonicalOverride()
