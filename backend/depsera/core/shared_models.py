"""Enums shared between models, schemas and the sync engine."""

from enum import Enum


class SyncTriggerType(str, Enum):
    """What started a manifest sync run."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"


class ManifestSyncStatus(str, Enum):
    """Terminal status of a manifest sync run."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class DriftType(str, Enum):
    """Kind of divergence recorded by a drift flag."""

    FIELD_CHANGE = "field_change"
    SERVICE_REMOVAL = "service_removal"


class DriftFlagStatus(str, Enum):
    """Lifecycle of a drift flag.

    PENDING and DISMISSED are "open": the divergence still exists. ACCEPTED and
    RESOLVED are closed.
    """

    PENDING = "pending"
    DISMISSED = "dismissed"
    ACCEPTED = "accepted"
    RESOLVED = "resolved"


OPEN_DRIFT_STATUSES = (DriftFlagStatus.PENDING.value, DriftFlagStatus.DISMISSED.value)


class AssociationType(str, Enum):
    """How a dependency relates to a linked service."""

    API_CALL = "api_call"
    DATABASE = "database"
    MESSAGE_QUEUE = "message_queue"
    CACHE = "cache"
    OTHER = "other"


class ManifestResourceKind(str, Enum):
    """Resource kinds reconciled by a sync run, in apply order."""

    SERVICES = "services"
    ALIASES = "aliases"
    CANONICAL_OVERRIDES = "canonical_overrides"
    ASSOCIATIONS = "associations"
