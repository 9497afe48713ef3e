"""Periodic trigger for manifest syncs."""

import asyncio
import time
from contextlib import suppress
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from depsera import crud
from depsera.core.config import settings
from depsera.core.datetime_utils import utc_now_naive
from depsera.core.exceptions import NotFoundException
from depsera.core.logging import ContextualLogger
from depsera.core.logging import logger as default_logger
from depsera.core.shared_models import SyncTriggerType
from depsera.models import TeamManifestConfig
from depsera.platform.manifest.coordinator import SyncCoordinator

HISTORY_CLEANUP_INTERVAL_SECONDS = 24 * 60 * 60


def is_due(config: TeamManifestConfig, now: datetime) -> bool:
    """Check whether a config's sync interval has elapsed."""
    if config.last_sync_at is None:
        return True
    interval = config.sync_interval_seconds or settings.MANIFEST_SYNC_INTERVAL_SECONDS
    return now - config.last_sync_at >= timedelta(seconds=interval)


class ManifestSyncScheduler:
    """Background loop that triggers scheduled syncs for due teams.

    Due teams are synced one after another. Errors in a tick are logged and the loop
    keeps running.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        check_interval: Optional[float] = None,
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the scheduler.

        Args:
            coordinator: Coordinator that runs the syncs
            session_factory: Factory for database sessions (defaults to the coordinator's)
            check_interval: Seconds between checks
                (defaults to MANIFEST_SCHEDULE_CHECK_INTERVAL_SECONDS)
            logger: Optional contextual logger
        """
        self.coordinator = coordinator
        self._session_factory = session_factory or coordinator.session_factory
        self.check_interval = (
            check_interval
            if check_interval is not None
            else settings.MANIFEST_SCHEDULE_CHECK_INTERVAL_SECONDS
        )
        self.logger = logger or default_logger.with_context(component="manifest_scheduler")
        self._task: Optional[asyncio.Task] = None
        self._last_cleanup: Optional[float] = None

    @property
    def is_running(self) -> bool:
        """Check whether the loop task is alive."""
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start the loop. Calling it while running is a no-op.

        Returns:
            True if the loop is running after the call
        """
        if not settings.MANIFEST_SYNC_ENABLED:
            self.logger.info("[ManifestScheduler] Manifest sync disabled, scheduler not started")
            return False
        if self.is_running:
            return True
        self._task = asyncio.create_task(self._run())
        self.logger.info(f"[ManifestScheduler] Started (every {self.check_interval}s)")
        return True

    async def stop(self) -> None:
        """Stop the loop and wait for in-flight syncs to finish."""
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            self.logger.info("[ManifestScheduler] Stopped")
        await self.coordinator.shutdown()

    async def _run(self) -> None:
        while True:
            try:
                await self.check_due()
                await self.cleanup_history()
            except Exception as e:
                self.logger.error(f"[ManifestScheduler] Check failed: {e}", exc_info=True)
            await asyncio.sleep(self.check_interval)

    async def check_due(self) -> List[UUID]:
        """Trigger a scheduled sync for every enabled team whose interval has elapsed.

        Returns:
            IDs of the teams that were triggered
        """
        async with self._session_factory() as db:
            configs = await crud.manifest_config.get_all_enabled(db)

        now = utc_now_naive()
        due = [
            c.team_id
            for c in configs
            if is_due(c, now) and not self.coordinator.is_syncing(c.team_id)
        ]
        if due:
            self.logger.debug(f"[ManifestScheduler] {len(due)} team(s) due for sync")

        triggered = []
        for team_id in due:
            try:
                outcome = await self.coordinator.run_sync(
                    team_id, trigger_type=SyncTriggerType.SCHEDULED
                )
            except NotFoundException:
                # Config deleted between listing and triggering
                continue
            except Exception as e:
                self.logger.error(f"[ManifestScheduler] Sync for team {team_id} failed: {e}")
                continue
            if outcome.accepted:
                triggered.append(team_id)
        return triggered

    async def cleanup_history(self) -> int:
        """Apply history retention at most once per cleanup interval."""
        now = time.monotonic()
        if (
            self._last_cleanup is not None
            and now - self._last_cleanup < HISTORY_CLEANUP_INTERVAL_SECONDS
        ):
            return 0
        self._last_cleanup = now
        return await self.coordinator.recorder.cleanup()
