"""CRUD operations for dependency associations."""

from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from depsera.db.unit_of_work import UnitOfWork
from depsera.models.dependency import Dependency
from depsera.models.dependency_association import DependencyAssociation
from depsera.models.service import Service
from depsera.models.team import Team

# (association, owning service manifest_key, dependency name, dependency canonical name,
#  linked service manifest_key, linked service team key, linked service team_id)
ManagedAssociationRow = Tuple[
    DependencyAssociation, Optional[str], str, Optional[str], Optional[str], Optional[str], UUID
]


class CRUDDependencyAssociation:
    """CRUD operations for dependency associations."""

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = DependencyAssociation

    async def get(self, db: AsyncSession, id: UUID) -> Optional[DependencyAssociation]:
        """Get an association by ID."""
        result = await db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_by_pair(
        self,
        db: AsyncSession,
        dependency_id: UUID,
        linked_service_id: UUID,
    ) -> Optional[DependencyAssociation]:
        """Get the association between a dependency and a linked service."""
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.dependency_id == dependency_id,
                    self.model.linked_service_id == linked_service_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def get_manifest_managed(
        self, db: AsyncSession, team_id: UUID
    ) -> List[ManagedAssociationRow]:
        """Get manifest-managed associations on a team's services.

        Joins through the owning service and the linked service so the caller can
        rebuild each association's manifest natural key.

        Args:
            db: Database session
            team_id: Team that owns the dependency side of the association

        Returns:
            List of ManagedAssociationRow tuples
        """
        owner = Service.__table__.alias("owner")
        linked = Service.__table__.alias("linked")
        linked_team = Team.__table__.alias("linked_team")
        stmt = (
            select(
                self.model,
                owner.c.manifest_key,
                Dependency.name,
                Dependency.canonical_name,
                linked.c.manifest_key,
                linked_team.c.key,
                linked.c.team_id,
            )
            .join(Dependency, Dependency.id == self.model.dependency_id)
            .join(owner, owner.c.id == Dependency.service_id)
            .join(linked, linked.c.id == self.model.linked_service_id)
            .outerjoin(linked_team, linked_team.c.id == linked.c.team_id)
            .where(
                and_(
                    owner.c.team_id == team_id,
                    self.model.manifest_managed.is_(True),
                )
            )
        )
        result = await db.execute(stmt)
        return [tuple(row) for row in result.all()]

    async def create(
        self,
        db: AsyncSession,
        *,
        obj_in: Dict[str, Any],
        uow: Optional[UnitOfWork] = None,
    ) -> DependencyAssociation:
        """Create an association."""
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
        db_obj: DependencyAssociation,
        obj_in: Dict[str, Any],
        uow: Optional[UnitOfWork] = None,
    ) -> DependencyAssociation:
        """Update an association in place."""
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
        """Delete an association.

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


dependency_association = CRUDDependencyAssociation()
