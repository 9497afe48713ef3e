"""CRUD operations for team manifest configuration."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from depsera.db.unit_of_work import UnitOfWork
from depsera.models.manifest_config import TeamManifestConfig
from depsera.schemas.manifest_config import TeamManifestConfigCreate, TeamManifestConfigUpdate


class CRUDTeamManifestConfig:
    """CRUD operations for team manifest configuration."""

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = TeamManifestConfig

    async def get_by_team(self, db: AsyncSession, team_id: UUID) -> Optional[TeamManifestConfig]:
        """Get a team's manifest configuration.

        Args:
            db: Database session
            team_id: Team ID

        Returns:
            TeamManifestConfig if configured, None otherwise
        """
        result = await db.execute(select(self.model).where(self.model.team_id == team_id))
        return result.scalar_one_or_none()

    async def get_all_enabled(self, db: AsyncSession) -> List[TeamManifestConfig]:
        """Get every enabled configuration, for the scheduler."""
        result = await db.execute(select(self.model).where(self.model.is_enabled.is_(True)))
        return list(result.scalars().all())

    async def create(
        self,
        db: AsyncSession,
        *,
        team_id: UUID,
        obj_in: TeamManifestConfigCreate,
        uow: Optional[UnitOfWork] = None,
    ) -> TeamManifestConfig:
        """Create a team's manifest configuration.

        Args:
            db: Database session
            team_id: Team ID
            obj_in: Configuration values
            uow: Optional unit of work for transaction control

        Returns:
            Created configuration
        """
        data = obj_in.model_dump(mode="json")
        db_obj = self.model(team_id=team_id, **data)
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
        db_obj: TeamManifestConfig,
        obj_in: TeamManifestConfigUpdate,
        uow: Optional[UnitOfWork] = None,
    ) -> TeamManifestConfig:
        """Update a team's manifest configuration with the fields that were set."""
        for field, value in obj_in.model_dump(mode="json", exclude_unset=True).items():
            setattr(db_obj, field, value)
        db.add(db_obj)

        if uow:
            await uow.flush()
        else:
            await db.commit()
            await db.refresh(db_obj)

        return db_obj

    async def record_sync_result(
        self,
        db: AsyncSession,
        *,
        team_id: UUID,
        synced_at: datetime,
        status: str,
        error: Optional[str],
        summary: Optional[Dict[str, Any]],
        uow: Optional[UnitOfWork] = None,
    ) -> int:
        """Cache the outcome of the latest run on the configuration.

        Args:
            db: Database session
            team_id: Team ID
            synced_at: When the run finished
            status: Terminal run status
            error: Joined error text for failed runs, None otherwise
            summary: Run summary
            uow: Optional unit of work for transaction control

        Returns:
            Number of rows updated
        """
        result = await db.execute(
            update(self.model)
            .where(self.model.team_id == team_id)
            .values(
                last_sync_at=synced_at,
                last_sync_status=status,
                last_sync_error=error,
                last_sync_summary=summary,
            )
        )

        if uow:
            await uow.flush()
        else:
            await db.commit()

        return result.rowcount


manifest_config = CRUDTeamManifestConfig()
