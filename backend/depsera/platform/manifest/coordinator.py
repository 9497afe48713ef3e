"""Sync coordinator: runs one manifest sync per team at a time.

A run moves a team from Idle to Running and ends in exactly one terminal status
(success, partial or failed). Whatever happens inside the run, it records one
history entry, updates the config's cached last-sync fields and releases the
team's lock before returning. Triggers that arrive while the team is Running are
rejected immediately instead of queueing.
"""

import asyncio
import time
from typing import Dict, Hashable, List, Optional, Set, Tuple
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from depsera import crud, schemas
from depsera.core.config import settings
from depsera.core.exceptions import NotFoundException
from depsera.core.host_rate_limiter import HostConcurrencyLimiter
from depsera.core.logging import ContextualLogger
from depsera.core.logging import logger as default_logger
from depsera.core.shared_models import ManifestSyncStatus, SyncTriggerType
from depsera.platform.manifest import metrics
from depsera.platform.manifest.applier import ApplyResult, ReconciliationApplier
from depsera.platform.manifest.differ import DiffEngine
from depsera.platform.manifest.drift import DriftDetector
from depsera.platform.manifest.exceptions import (
    ManifestFetchError,
    ManifestValidationError,
    SyncAlreadyRunningError,
)
from depsera.platform.manifest.fetcher import ManifestFetcher
from depsera.platform.manifest.history import SyncHistoryRecorder
from depsera.platform.manifest.notifier import ManifestSyncNotifier
from depsera.platform.manifest.snapshot import StateSnapshotReader
from depsera.platform.manifest.validator import ManifestValidator
from depsera.schemas.manifest_config import ManifestSyncPolicy
from depsera.schemas.manifest_sync import (
    ManifestSyncOutcome,
    ManifestSyncResult,
    SyncOutcomeKind,
)


class KeyedLock:
    """Per-key exclusive locks that reject instead of waiting."""

    def __init__(self):
        """Initialize the lock table."""
        self._locks: Dict[Hashable, asyncio.Lock] = {}

    async def try_acquire(self, key: Hashable) -> bool:
        """Take the lock for a key if it is free.

        Returns:
            True if the lock was taken, False if it is already held
        """
        lock = self._locks.setdefault(key, asyncio.Lock())
        if lock.locked():
            return False
        await lock.acquire()
        return True

    def release(self, key: Hashable) -> None:
        """Release the lock for a key. Releasing a free key is a no-op."""
        lock = self._locks.pop(key, None)
        if lock is not None and lock.locked():
            lock.release()

    def is_held(self, key: Hashable) -> bool:
        """Check whether the key's lock is held."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return sum(1 for lock in self._locks.values() if lock.locked())


def status_for(apply_result: ApplyResult) -> ManifestSyncStatus:
    """Terminal status of a run that reached the apply stage."""
    if not apply_result.errors:
        return ManifestSyncStatus.SUCCESS
    if apply_result.succeeded > 0:
        return ManifestSyncStatus.PARTIAL
    return ManifestSyncStatus.FAILED


class SyncCoordinator:
    """Owns the per-team lock and drives fetch, validate, diff, drift, apply, record."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        fetcher: Optional[ManifestFetcher] = None,
        validator: Optional[ManifestValidator] = None,
        snapshot_reader: Optional[StateSnapshotReader] = None,
        differ: Optional[DiffEngine] = None,
        drift_detector: Optional[DriftDetector] = None,
        applier: Optional[ReconciliationApplier] = None,
        recorder: Optional[SyncHistoryRecorder] = None,
        notifier: Optional[ManifestSyncNotifier] = None,
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the coordinator.

        Every collaborator can be injected; missing ones are built from settings
        against the same session factory.

        Args:
            session_factory: Factory for database sessions (defaults to AsyncSessionLocal)
            fetcher: Manifest fetcher
            validator: Manifest validator
            snapshot_reader: Team state reader
            differ: Diff engine
            drift_detector: Drift detector
            applier: Reconciliation applier
            recorder: History recorder
            notifier: Event notifier
            logger: Optional contextual logger
        """
        if session_factory is None:
            from depsera.db.session import AsyncSessionLocal

            session_factory = AsyncSessionLocal

        self.logger = logger or default_logger.with_context(component="manifest_sync")
        self.session_factory = session_factory
        self.fetcher = fetcher or ManifestFetcher(HostConcurrencyLimiter())
        self.validator = validator or ManifestValidator()
        self.snapshot_reader = snapshot_reader or StateSnapshotReader(session_factory)
        self.differ = differ or DiffEngine()
        self.drift_detector = drift_detector or DriftDetector(session_factory)
        self.applier = applier or ReconciliationApplier(session_factory)
        self.recorder = recorder or SyncHistoryRecorder(session_factory)
        self.notifier = notifier or ManifestSyncNotifier()

        self._locks = KeyedLock()
        self._in_flight: Set[asyncio.Task] = set()
        self._last_manual_sync: Dict[UUID, float] = {}

    # ------------------------------------------------------------------
    # Triggering
    # ------------------------------------------------------------------

    async def run_sync(
        self,
        team_id: UUID,
        triggered_by: Optional[UUID] = None,
        trigger_type: SyncTriggerType = SyncTriggerType.MANUAL,
    ) -> ManifestSyncOutcome:
        """Run a sync for a team and wait for it to finish.

        Cancelling the caller does not cancel the run: it completes to a terminal
        status in the background and releases the lock itself.

        Args:
            team_id: Team ID
            triggered_by: User who requested the run, None for scheduled runs
            trigger_type: Manual or scheduled

        Returns:
            ManifestSyncOutcome with the run result, or a rejection without a run

        Raises:
            NotFoundException: If the team has no manifest configuration
        """
        config = await self._load_config(team_id)
        if not config.is_enabled:
            metrics.sync_rejections_total.labels(reason=SyncOutcomeKind.DISABLED.value).inc()
            return ManifestSyncOutcome(
                team_id=team_id,
                outcome=SyncOutcomeKind.DISABLED,
                message="Manifest sync is disabled for this team",
            )

        try:
            await self._claim(team_id)
        except SyncAlreadyRunningError as e:
            metrics.sync_rejections_total.labels(
                reason=SyncOutcomeKind.ALREADY_RUNNING.value
            ).inc()
            self.logger.info(f"[ManifestSync] Rejected trigger for team {team_id}: {e}")
            return ManifestSyncOutcome(
                team_id=team_id,
                outcome=SyncOutcomeKind.ALREADY_RUNNING,
                message=str(e),
            )

        if trigger_type == SyncTriggerType.MANUAL:
            self._last_manual_sync[team_id] = time.monotonic()

        task = asyncio.ensure_future(self._run_locked(config, trigger_type, triggered_by))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

        result = await asyncio.shield(task)
        return ManifestSyncOutcome(
            team_id=team_id,
            outcome=SyncOutcomeKind.COMPLETED,
            result=result,
        )

    async def _claim(self, team_id: UUID) -> None:
        if not await self._locks.try_acquire(team_id):
            raise SyncAlreadyRunningError(team_id)

    async def _load_config(self, team_id: UUID) -> schemas.TeamManifestConfig:
        async with self.session_factory() as db:
            db_config = await crud.manifest_config.get_by_team(db, team_id)
            if db_config is None:
                raise NotFoundException(f"No manifest configuration for team {team_id}")
            return schemas.TeamManifestConfig.model_validate(db_config)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def _run_locked(
        self,
        config: schemas.TeamManifestConfig,
        trigger_type: SyncTriggerType,
        triggered_by: Optional[UUID],
    ) -> ManifestSyncResult:
        """Execute a run while holding the team's lock, then release it."""
        team_id = config.team_id
        result = ManifestSyncResult(history_id=uuid4(), status=ManifestSyncStatus.FAILED)
        log = self.logger.with_context(
            team_id=str(team_id),
            trigger_type=trigger_type.value,
            sync_history_id=str(result.history_id),
        )
        item_error_kinds: List[str] = []
        started = time.monotonic()
        metrics.active_syncs.inc()
        try:
            log.info(
                f"[ManifestSync] Starting {trigger_type.value} sync from {config.manifest_url}"
            )
            try:
                apply_result = await self._pipeline(config, result, triggered_by)
                result.status = status_for(apply_result)
                item_error_kinds = [e.kind for e in apply_result.errors]
            except ManifestFetchError as e:
                log.warning(f"[ManifestSync] Fetch failed: {e}")
                result.errors.append(str(e))
            except ManifestValidationError as e:
                log.warning(f"[ManifestSync] Validation failed: {e}")
                result.errors.extend(e.messages)
                result.warnings.extend(str(w) for w in e.warnings)
            except Exception as e:
                log.error(f"[ManifestSync] Unexpected error: {e}", exc_info=True)
                result.status = ManifestSyncStatus.FAILED
                result.errors.append(f"Unexpected error: {e}")

            result.duration_ms = int((time.monotonic() - started) * 1000)
            await self.recorder.record(
                team_id=team_id,
                trigger_type=trigger_type,
                triggered_by=triggered_by,
                manifest_url=config.manifest_url,
                result=result,
            )
            log.info(
                f"[ManifestSync] Finished with status {result.status.value} in "
                f"{result.duration_ms}ms ({len(result.errors)} error(s), "
                f"{len(result.warnings)} warning(s))"
            )

            self._observe(result, trigger_type, item_error_kinds, log)
            try:
                await self.notifier.notify_result(team_id, trigger_type, result)
            except Exception as e:
                log.error(f"[ManifestSync] Failed to notify subscribers: {e}")
            return result
        finally:
            metrics.active_syncs.dec()
            self._locks.release(team_id)

    async def _pipeline(
        self,
        config: schemas.TeamManifestConfig,
        result: ManifestSyncResult,
        triggered_by: Optional[UUID],
    ) -> ApplyResult:
        """Fetch, validate, diff, handle drift and apply. Fills ``result`` as it goes."""
        team_id = config.team_id
        policy: ManifestSyncPolicy = config.sync_policy

        raw = await self.fetcher.fetch(config.manifest_url)
        document, issues = self.validator.parse(raw)
        result.warnings.extend(str(issue) for issue in issues)

        snapshot = await self.snapshot_reader.read(team_id)
        plan = self.differ.diff(document, snapshot, policy)
        drift = await self.drift_detector.run(
            team_id, plan, snapshot, policy, sync_history_id=result.history_id
        )

        apply_result = await self.applier.apply(
            team_id, plan, snapshot, drift, triggered_by=triggered_by
        )
        result.summary = apply_result.summary
        result.errors.extend(str(e) for e in apply_result.errors)
        result.warnings.extend(apply_result.warnings)
        result.changes = apply_result.changes
        return apply_result

    def _observe(
        self,
        result: ManifestSyncResult,
        trigger_type: SyncTriggerType,
        item_error_kinds: List[str],
        log: ContextualLogger,
    ) -> None:
        try:
            metrics.sync_runs_total.labels(
                status=result.status.value, trigger=trigger_type.value
            ).inc()
            metrics.sync_duration_seconds.labels(trigger=trigger_type.value).observe(
                result.duration_ms / 1000
            )
            if result.summary.drift_flagged:
                metrics.drift_flags_raised_total.inc(result.summary.drift_flagged)
            for kind in item_error_kinds:
                metrics.item_errors_total.labels(kind=kind).inc()
        except Exception as e:
            log.error(f"[ManifestSync] Failed to update metrics: {e}")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def can_manual_sync(self, team_id: UUID) -> Tuple[bool, float]:
        """Check the manual trigger cooldown.

        Returns:
            Tuple of (allowed, seconds until allowed)
        """
        last = self._last_manual_sync.get(team_id)
        if last is None:
            return True, 0.0
        remaining = settings.MANIFEST_MANUAL_SYNC_COOLDOWN_SECONDS - (time.monotonic() - last)
        if remaining <= 0:
            return True, 0.0
        return False, remaining

    def is_syncing(self, team_id: UUID) -> bool:
        """Check whether a run is in flight for the team."""
        return self._locks.is_held(team_id)

    @property
    def active_count(self) -> int:
        """Number of runs in flight."""
        return len(self._locks)

    async def shutdown(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight runs to finish.

        Args:
            timeout: Seconds to wait (defaults to MANIFEST_SHUTDOWN_WAIT_SECONDS)

        Returns:
            True if every run finished in time
        """
        if not self._in_flight:
            return True
        wait = timeout if timeout is not None else settings.MANIFEST_SHUTDOWN_WAIT_SECONDS
        self.logger.info(f"[ManifestSync] Waiting for {len(self._in_flight)} run(s) to finish")
        _, pending = await asyncio.wait(set(self._in_flight), timeout=wait)
        if pending:
            self.logger.warning(
                f"[ManifestSync] {len(pending)} run(s) still running after {wait}s"
            )
            return False
        return True
