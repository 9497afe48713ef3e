"""Manifest sync for Depsera.

Provides:
- SyncCoordinator: Runs one sync per team and records its outcome
- ManifestSyncScheduler: Triggers scheduled syncs for due teams
- ManifestSyncNotifier: Publishes run events to in-process subscribers
"""

from .coordinator import SyncCoordinator
from .notifier import ManifestSyncEvent, ManifestSyncEventType, ManifestSyncNotifier
from .scheduler import ManifestSyncScheduler

__all__ = [
    "SyncCoordinator",
    "ManifestSyncScheduler",
    "ManifestSyncNotifier",
    "ManifestSyncEvent",
    "ManifestSyncEventType",
]
