"""CRUD operations for services."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from depsera.db.unit_of_work import UnitOfWork
from depsera.models.service import Service


class CRUDService:
    """CRUD operations for services, including manifest ownership columns."""

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = Service

    async def get(self, db: AsyncSession, id: UUID) -> Optional[Service]:
        """Get a service by ID.

        Args:
            db: Database session
            id: Service ID

        Returns:
            Service if found, None otherwise
        """
        result = await db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_by_team(self, db: AsyncSession, team_id: UUID) -> List[Service]:
        """Get all services owned by a team, managed or not."""
        result = await db.execute(
            select(self.model).where(self.model.team_id == team_id).order_by(self.model.name)
        )
        return list(result.scalars().all())

    async def get_manifest_managed(
        self,
        db: AsyncSession,
        team_id: UUID,
        manifest_keys: Optional[List[str]] = None,
    ) -> List[Service]:
        """Get a team's manifest-managed services, active or deactivated.

        Human-owned services are never returned, even when they carry a manifest key.

        Args:
            db: Database session
            team_id: Team ID
            manifest_keys: Optional manifest keys to restrict the lookup to

        Returns:
            List of services with manifest_managed set
        """
        conditions = [self.model.team_id == team_id, self.model.manifest_managed.is_(True)]
        if manifest_keys is not None:
            conditions.append(self.model.manifest_key.in_(manifest_keys))
        result = await db.execute(select(self.model).where(and_(*conditions)))
        return list(result.scalars().all())

    async def get_by_manifest_keys(
        self,
        db: AsyncSession,
        team_id: UUID,
        manifest_keys: List[str],
    ) -> Dict[str, Service]:
        """Map manifest keys to services within a team."""
        if not manifest_keys:
            return {}
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.team_id == team_id,
                    self.model.manifest_key.in_(manifest_keys),
                )
            )
        )
        return {svc.manifest_key: svc for svc in result.scalars().all()}

    async def create(
        self,
        db: AsyncSession,
        *,
        obj_in: Dict[str, Any],
        uow: Optional[UnitOfWork] = None,
    ) -> Service:
        """Create a service.

        Args:
            db: Database session
            obj_in: Column values
            uow: Optional unit of work for transaction control

        Returns:
            Created service
        """
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
        db_obj: Service,
        obj_in: Dict[str, Any],
        uow: Optional[UnitOfWork] = None,
    ) -> Service:
        """Update a service in place.

        Args:
            db: Database session
            db_obj: Service to update
            obj_in: Column values to set
            uow: Optional unit of work for transaction control

        Returns:
            Updated service
        """
        for field, value in obj_in.items():
            setattr(db_obj, field, value)
        db.add(db_obj)

        if uow:
            await uow.flush()
        else:
            await db.commit()
            await db.refresh(db_obj)

        return db_obj

    async def set_active(
        self,
        db: AsyncSession,
        *,
        id: UUID,
        is_active: bool,
        uow: Optional[UnitOfWork] = None,
    ) -> int:
        """Activate or deactivate a service.

        Returns:
            Number of rows updated
        """
        result = await db.execute(
            update(self.model).where(self.model.id == id).values(is_active=is_active)
        )

        if uow:
            await uow.flush()
        else:
            await db.commit()

        return result.rowcount

    async def remove(
        self,
        db: AsyncSession,
        *,
        id: UUID,
        uow: Optional[UnitOfWork] = None,
    ) -> bool:
        """Delete a service.

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


service = CRUDService()
