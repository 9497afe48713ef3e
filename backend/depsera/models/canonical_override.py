"""Canonical override model."""

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from depsera.models._base import Base, JSONType


class CanonicalOverride(Base):
    """Contact and impact overrides for a canonical dependency.

    ``team_id`` set means a team-scoped override; null means global. Each scope has
    its own uniqueness on ``canonical_name``.
    """

    __tablename__ = "dependency_canonical_overrides"

    canonical_name: Mapped[str] = mapped_column(String(255), nullable=False)
    team_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"), nullable=True, index=True
    )
    contact_override: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSONType, nullable=True
    )
    impact_override: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    manifest_managed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_by: Mapped[Optional[UUID]] = mapped_column(nullable=True)

    __table_args__ = (
        Index(
            "uq_canonical_overrides_team_scoped",
            "team_id",
            "canonical_name",
            unique=True,
            postgresql_where=text("team_id IS NOT NULL"),
            sqlite_where=text("team_id IS NOT NULL"),
        ),
        Index(
            "uq_canonical_overrides_global",
            "canonical_name",
            unique=True,
            postgresql_where=text("team_id IS NULL"),
            sqlite_where=text("team_id IS NULL"),
        ),
    )
