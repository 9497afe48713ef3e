"""Manifest sync history model."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from depsera.models._base import Base, JSONType


class ManifestSyncHistory(Base):
    """Append-only record of one manifest sync run.

    Rows are never updated. The only deletion path is retention cleanup.
    """

    __tablename__ = "manifest_sync_history"

    team_id: Mapped[UUID] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    trigger_type: Mapped[str] = mapped_column(String(20), nullable=False)
    triggered_by: Mapped[Optional[UUID]] = mapped_column(nullable=True)
    manifest_url: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    summary: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    errors: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    warnings: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        Index("ix_manifest_sync_history_team_created", "team_id", "created_at"),
    )
