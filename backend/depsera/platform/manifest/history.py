"""Records the outcome of sync runs."""

from datetime import timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from depsera import crud
from depsera.core.config import settings
from depsera.core.datetime_utils import utc_now_naive
from depsera.core.logging import ContextualLogger
from depsera.core.logging import logger as default_logger
from depsera.core.shared_models import ManifestSyncStatus, SyncTriggerType
from depsera.db.unit_of_work import UnitOfWork
from depsera.schemas.manifest_sync import ManifestSyncResult


class SyncHistoryRecorder:
    """Appends history entries and caches the last result on the team's config."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the recorder.

        Args:
            session_factory: Factory for database sessions
            logger: Optional contextual logger
        """
        self._session_factory = session_factory
        self.logger = logger or default_logger.with_context(component="manifest_history")

    async def record(
        self,
        team_id: UUID,
        trigger_type: SyncTriggerType,
        triggered_by: Optional[UUID],
        manifest_url: str,
        result: ManifestSyncResult,
    ) -> bool:
        """Write the history entry and the config's last-sync fields in one transaction.

        The entry uses ``result.history_id`` so drift flags raised earlier in the run
        already point at it.

        Args:
            team_id: Team ID
            trigger_type: What started the run
            triggered_by: User who started the run, if any
            manifest_url: URL the run fetched
            result: Terminal result of the run

        Returns:
            True if recorded, False if the write failed (the failure is logged)
        """
        summary = result.summary.model_dump(mode="json")
        error = "; ".join(result.errors) if result.status == ManifestSyncStatus.FAILED else None

        try:
            async with self._session_factory() as db:
                async with UnitOfWork(db) as uow:
                    await crud.manifest_sync_history.create(
                        db,
                        obj_in={
                            "id": result.history_id,
                            "team_id": team_id,
                            "trigger_type": trigger_type.value,
                            "triggered_by": triggered_by,
                            "manifest_url": manifest_url,
                            "status": result.status.value,
                            "summary": summary,
                            "errors": list(result.errors),
                            "warnings": list(result.warnings),
                            "duration_ms": result.duration_ms,
                        },
                        uow=uow,
                    )
                    await crud.manifest_config.record_sync_result(
                        db,
                        team_id=team_id,
                        synced_at=utc_now_naive(),
                        status=result.status.value,
                        error=error,
                        summary=summary,
                        uow=uow,
                    )
                    await uow.commit()
        except Exception as e:
            self.logger.error(f"Failed to record sync history for team {team_id}: {e}")
            return False

        self.logger.debug(f"Recorded sync history {result.history_id} ({result.status.value})")
        return True

    async def cleanup(self, retention_days: Optional[int] = None) -> int:
        """Delete history entries older than the retention window.

        Args:
            retention_days: Days to keep (defaults to MANIFEST_HISTORY_RETENTION_DAYS)

        Returns:
            Number of entries deleted
        """
        days = (
            retention_days
            if retention_days is not None
            else settings.MANIFEST_HISTORY_RETENTION_DAYS
        )
        cutoff = utc_now_naive() - timedelta(days=days)
        async with self._session_factory() as db:
            deleted = await crud.manifest_sync_history.delete_older_than(db, cutoff=cutoff)
        if deleted:
            self.logger.info(f"Deleted {deleted} sync history entries older than {days} days")
        return deleted
