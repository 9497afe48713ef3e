"""Team manifest configuration model."""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from depsera.models._base import Base, JSONType

if TYPE_CHECKING:
    from depsera.models.team import Team


class TeamManifestConfig(Base):
    """Where a team's manifest lives and how it is synced.

    One row per team. The ``last_sync_*`` columns cache the outcome of the most
    recent run and are written only by the sync coordinator.
    """

    __tablename__ = "team_manifest_config"

    team_id: Mapped[UUID] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    manifest_url: Mapped[str] = mapped_column(Text, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sync_policy: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    sync_interval_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Cached result of the last run
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_sync_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    last_sync_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_sync_summary: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSONType, nullable=True
    )

    team: Mapped["Team"] = relationship("Team", back_populates="manifest_config", lazy="noload")
