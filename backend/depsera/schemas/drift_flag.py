"""Drift flag schemas."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from depsera.core.shared_models import DriftFlagStatus, DriftType


class DriftFlag(BaseModel):
    """A recorded divergence between a managed service and its manifest entry."""

    id: UUID
    team_id: UUID
    service_id: UUID
    drift_type: DriftType
    field_name: Optional[str] = None
    manifest_value: Optional[str] = None
    current_value: Optional[str] = None
    status: DriftFlagStatus
    first_detected_at: datetime
    last_detected_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[UUID] = None
    sync_history_id: Optional[UUID] = None

    class Config:
        """Pydantic config."""

        from_attributes = True


class DriftFlagResolve(BaseModel):
    """Manual resolution of a drift flag."""

    status: DriftFlagStatus = Field(
        ..., description="dismissed keeps the flag open; accepted and resolved close it"
    )

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: DriftFlagStatus) -> DriftFlagStatus:
        """A flag cannot be manually moved back to pending."""
        if v == DriftFlagStatus.PENDING:
            raise ValueError("status must be dismissed, accepted or resolved")
        return v


class DriftSummary(BaseModel):
    """Open drift counts for a team."""

    pending_count: int = 0
    dismissed_count: int = 0
    service_ids: List[UUID] = Field(default_factory=list)
