"""Schemas for manifest sync results and history."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from depsera.core.shared_models import ManifestSyncStatus, SyncTriggerType


class KindSummary(BaseModel):
    """Per-kind counters for one sync run."""

    created: int = 0
    updated: int = 0
    removed: int = 0
    unchanged: int = 0
    drift_flagged: int = 0


class ServiceKindSummary(KindSummary):
    """Service counters. ``removed`` is ``deactivated + deleted``."""

    deactivated: int = 0
    deleted: int = 0


class ManifestSyncSummary(BaseModel):
    """Counters for every resource kind."""

    services: ServiceKindSummary = Field(default_factory=ServiceKindSummary)
    aliases: KindSummary = Field(default_factory=KindSummary)
    canonical_overrides: KindSummary = Field(default_factory=KindSummary)
    associations: KindSummary = Field(default_factory=KindSummary)

    @property
    def successful_writes(self) -> int:
        """Number of items that were created, updated or removed."""
        return sum(
            kind.created + kind.updated + kind.removed
            for kind in (self.services, self.aliases, self.canonical_overrides, self.associations)
        )

    @property
    def drift_flagged(self) -> int:
        """Drift flags raised or refreshed across all kinds."""
        return self.services.drift_flagged


class ManifestSyncChange(BaseModel):
    """One service-level change applied (or observed) by a run."""

    manifest_key: str
    service_name: str
    action: str = Field(
        ..., description="created, updated, deactivated, deleted, drift_flagged or unchanged"
    )
    fields_changed: List[str] = Field(default_factory=list)
    drift_fields: List[str] = Field(default_factory=list)


class ManifestSyncResult(BaseModel):
    """Result of one completed sync run."""

    history_id: UUID
    status: ManifestSyncStatus
    summary: ManifestSyncSummary = Field(default_factory=ManifestSyncSummary)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    changes: List[ManifestSyncChange] = Field(default_factory=list)
    duration_ms: int = 0


class SyncOutcomeKind(str, Enum):
    """Whether a trigger produced a run."""

    COMPLETED = "completed"
    ALREADY_RUNNING = "already_running"
    DISABLED = "disabled"


class ManifestSyncOutcome(BaseModel):
    """What a trigger produced: a completed run or a rejection without a run."""

    team_id: UUID
    outcome: SyncOutcomeKind
    message: Optional[str] = None
    result: Optional[ManifestSyncResult] = None

    @property
    def accepted(self) -> bool:
        """True when a run actually happened."""
        return self.outcome == SyncOutcomeKind.COMPLETED


class ManifestSyncHistory(BaseModel):
    """A recorded sync run."""

    id: UUID
    team_id: UUID
    trigger_type: SyncTriggerType
    triggered_by: Optional[UUID] = None
    manifest_url: str
    status: ManifestSyncStatus
    summary: Optional[ManifestSyncSummary] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    duration_ms: Optional[int] = None
    created_at: datetime

    class Config:
        """Pydantic config."""

        from_attributes = True


class ManifestSyncHistoryPage(BaseModel):
    """One page of sync history, newest first."""

    history: List[ManifestSyncHistory]
    total: int
    limit: int
    offset: int
