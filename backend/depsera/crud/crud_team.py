"""CRUD operations for teams (read-only for the manifest engine)."""

from typing import Dict, Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from depsera.models.team import Team


class CRUDTeam:
    """Lookups on teams."""

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = Team

    async def get(self, db: AsyncSession, id: UUID) -> Optional[Team]:
        """Get a team by ID."""
        result = await db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_ids_by_keys(self, db: AsyncSession, keys: Iterable[str]) -> Dict[str, UUID]:
        """Map team keys to team IDs.

        Args:
            db: Database session
            keys: Team keys to look up

        Returns:
            Dict of key -> team ID for keys that exist
        """
        keys = list(set(keys))
        if not keys:
            return {}
        result = await db.execute(
            select(self.model.key, self.model.id).where(self.model.key.in_(keys))
        )
        return {key: team_id for key, team_id in result.all()}


team = CRUDTeam()
