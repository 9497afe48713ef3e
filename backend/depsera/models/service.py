"""Service model."""

from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from depsera.models._base import Base, JSONType

if TYPE_CHECKING:
    from depsera.models.dependency import Dependency
    from depsera.models.team import Team


DEFAULT_POLL_INTERVAL_MS = 30000


class Service(Base):
    """A service tracked for a team.

    Services created by manifest sync carry ``manifest_key`` and
    ``manifest_managed=True``. ``manifest_last_synced_values`` holds the field values
    sync last wrote, which is the baseline for drift detection. Removal from the
    manifest deactivates (``is_active=False``) rather than deleting by default.
    """

    __tablename__ = "services"

    team_id: Mapped[UUID] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    health_endpoint: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metrics_endpoint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    poll_interval_ms: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_POLL_INTERVAL_MS
    )
    schema_config: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Manifest ownership
    manifest_key: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    manifest_managed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    manifest_last_synced_values: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSONType, nullable=True
    )

    team: Mapped["Team"] = relationship("Team", back_populates="services", lazy="noload")
    dependencies: Mapped[List["Dependency"]] = relationship(
        "Dependency", back_populates="service", lazy="noload", passive_deletes=True
    )

    __table_args__ = (
        Index(
            "uq_services_team_manifest_key",
            "team_id",
            "manifest_key",
            unique=True,
            postgresql_where=text("manifest_key IS NOT NULL"),
            sqlite_where=text("manifest_key IS NOT NULL"),
        ),
    )
