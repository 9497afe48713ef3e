"""Drift flag model."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from depsera.core.datetime_utils import utc_now_naive
from depsera.core.shared_models import DriftFlagStatus
from depsera.models._base import Base


class DriftFlag(Base):
    """Divergence between a manifest-managed service and its manifest entry.

    ``sync_history_id`` points at the run that detected or last confirmed the drift.
    It is not a foreign key: the id is allocated when the run starts, before the
    history row exists.
    """

    __tablename__ = "drift_flags"

    team_id: Mapped[UUID] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    service_id: Mapped[UUID] = mapped_column(
        ForeignKey("services.id", ondelete="CASCADE"), nullable=False
    )
    drift_type: Mapped[str] = mapped_column(String(32), nullable=False)
    field_name: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    manifest_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    current_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DriftFlagStatus.PENDING.value
    )
    first_detected_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now_naive
    )
    last_detected_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now_naive
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolved_by: Mapped[Optional[UUID]] = mapped_column(nullable=True)
    sync_history_id: Mapped[Optional[UUID]] = mapped_column(nullable=True)

    __table_args__ = (
        Index("ix_drift_flags_team_status", "team_id", "status"),
        Index("ix_drift_flags_service_status", "service_id", "status"),
    )
