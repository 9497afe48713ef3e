"""Tests for sync event notifications."""

from uuid import uuid4

import pytest

from depsera.core.shared_models import ManifestSyncStatus, SyncTriggerType
from depsera.platform.manifest.notifier import (
    ManifestSyncEvent,
    ManifestSyncEventType,
    ManifestSyncNotifier,
    event_types_for_result,
)
from depsera.schemas.manifest_sync import ManifestSyncResult


def result(status=ManifestSyncStatus.SUCCESS, drift_flagged=0, errors=None):
    res = ManifestSyncResult(history_id=uuid4(), status=status, errors=errors or [])
    res.summary.services.drift_flagged = drift_flagged
    return res


@pytest.mark.parametrize(
    "status,drift,expected",
    [
        (ManifestSyncStatus.SUCCESS, 0, [ManifestSyncEventType.COMPLETED]),
        (ManifestSyncStatus.PARTIAL, 0, [ManifestSyncEventType.COMPLETED]),
        (ManifestSyncStatus.FAILED, 0, [ManifestSyncEventType.FAILED]),
        (
            ManifestSyncStatus.SUCCESS,
            2,
            [ManifestSyncEventType.COMPLETED, ManifestSyncEventType.DRIFT_DETECTED],
        ),
    ],
)
def test_event_types_for_result(status, drift, expected):
    """Test the mapping from run results to events."""
    assert event_types_for_result(result(status, drift)) == expected


@pytest.mark.asyncio
async def test_sync_and_async_subscribers_receive_events():
    """Test that both plain and coroutine callbacks are delivered to."""
    notifier = ManifestSyncNotifier()
    received = []

    async def async_subscriber(event):
        received.append(("async", event.type))

    notifier.subscribe(lambda event: received.append(("sync", event.type)))
    notifier.subscribe(async_subscriber)
    team_id = uuid4()

    await notifier.notify_result(
        team_id,
        SyncTriggerType.MANUAL,
        result(ManifestSyncStatus.FAILED, errors=["HTTP 404: Not Found"]),
    )

    assert received == [
        ("sync", ManifestSyncEventType.FAILED),
        ("async", ManifestSyncEventType.FAILED),
    ]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_block_others():
    """Test that subscriber errors are contained."""
    notifier = ManifestSyncNotifier()
    received = []

    def broken(event):
        raise RuntimeError("subscriber down")

    notifier.subscribe(broken)
    notifier.subscribe(received.append)
    res = result(drift_flagged=1)

    await notifier.notify_result(uuid4(), SyncTriggerType.SCHEDULED, res)

    assert [e.type for e in received] == [
        ManifestSyncEventType.COMPLETED,
        ManifestSyncEventType.DRIFT_DETECTED,
    ]
    assert all(e.history_id == res.history_id for e in received)
    assert all(e.trigger_type == SyncTriggerType.SCHEDULED for e in received)


@pytest.mark.asyncio
async def test_unsubscribe():
    """Test that an unsubscribed callback stops receiving events."""
    notifier = ManifestSyncNotifier()
    received = []
    unsubscribe = notifier.subscribe(received.append)
    unsubscribe()
    unsubscribe()

    await notifier.publish(
        ManifestSyncEvent(
            type=ManifestSyncEventType.COMPLETED,
            team_id=uuid4(),
            history_id=uuid4(),
            trigger_type=SyncTriggerType.MANUAL,
            status=ManifestSyncStatus.SUCCESS,
        )
    )

    assert received == []
