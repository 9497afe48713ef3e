"""In-process event notifications for manifest sync runs."""

import inspect
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from depsera.core.datetime_utils import utc_now_naive
from depsera.core.logging import ContextualLogger
from depsera.core.logging import logger as default_logger
from depsera.core.shared_models import ManifestSyncStatus, SyncTriggerType
from depsera.schemas.manifest_sync import ManifestSyncResult


class ManifestSyncEventType(str, Enum):
    """Event types published by the sync engine."""

    COMPLETED = "manifest_sync.completed"
    FAILED = "manifest_sync.failed"
    DRIFT_DETECTED = "manifest_sync.drift_detected"


class ManifestSyncEvent(BaseModel):
    """Payload delivered to subscribers."""

    type: ManifestSyncEventType
    team_id: UUID
    history_id: UUID
    trigger_type: SyncTriggerType
    status: ManifestSyncStatus
    drift_flagged: int = 0
    errors: List[str] = Field(default_factory=list)
    occurred_at: datetime = Field(default_factory=utc_now_naive)


Subscriber = Callable[[ManifestSyncEvent], Union[None, Awaitable[None]]]


def event_types_for_result(result: ManifestSyncResult) -> List[ManifestSyncEventType]:
    """Map a run result to the events it produces."""
    types = [
        ManifestSyncEventType.FAILED
        if result.status == ManifestSyncStatus.FAILED
        else ManifestSyncEventType.COMPLETED
    ]
    if result.summary.drift_flagged > 0:
        types.append(ManifestSyncEventType.DRIFT_DETECTED)
    return types


class ManifestSyncNotifier:
    """Fans run events out to subscribers.

    Subscriber failures are logged and never affect the run or other subscribers.
    """

    def __init__(self, logger: Optional[ContextualLogger] = None):
        """Initialize the notifier."""
        self.logger = logger or default_logger.with_context(component="manifest_notifier")
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for every event.

        Args:
            callback: Sync or async callable receiving a ManifestSyncEvent

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def publish(self, event: ManifestSyncEvent) -> None:
        """Deliver one event to every subscriber."""
        for callback in list(self._subscribers):
            try:
                outcome: Any = callback(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                self.logger.error(f"Failed to publish event {event.type.value}: {e}")

    async def notify_result(
        self,
        team_id: UUID,
        trigger_type: SyncTriggerType,
        result: ManifestSyncResult,
    ) -> None:
        """Publish the events for a finished run."""
        for event_type in event_types_for_result(result):
            await self.publish(
                ManifestSyncEvent(
                    type=event_type,
                    team_id=team_id,
                    history_id=result.history_id,
                    trigger_type=trigger_type,
                    status=result.status,
                    drift_flagged=result.summary.drift_flagged,
                    errors=list(result.errors),
                )
            )
