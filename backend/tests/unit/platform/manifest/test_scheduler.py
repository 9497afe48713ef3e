"""Tests for the manifest sync scheduler."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from depsera.core.config import settings
from depsera.core.datetime_utils import utc_now_naive
from depsera.core.exceptions import NotFoundException
from depsera.core.shared_models import SyncTriggerType
from depsera.models import ManifestSyncHistory, Team, TeamManifestConfig
from depsera.platform.manifest.scheduler import ManifestSyncScheduler, is_due


def config(**values) -> TeamManifestConfig:
    return TeamManifestConfig(manifest_url="https://m.example.com/x.json", **values)


class TestIsDue:
    """Tests for the interval check."""

    def test_never_synced_is_due(self):
        """Test that a config without a previous run is due."""
        assert is_due(config(last_sync_at=None), utc_now_naive())

    def test_uses_team_interval(self):
        """Test the per-team interval."""
        now = utc_now_naive()
        cfg = config(last_sync_at=now - timedelta(seconds=120), sync_interval_seconds=300)

        assert not is_due(cfg, now)
        assert is_due(cfg, now + timedelta(seconds=180))

    def test_falls_back_to_global_interval(self, monkeypatch):
        """Test the configured default interval."""
        monkeypatch.setattr(settings, "MANIFEST_SYNC_INTERVAL_SECONDS", 600)
        now = utc_now_naive()

        assert not is_due(config(last_sync_at=now - timedelta(seconds=599)), now)
        assert is_due(config(last_sync_at=now - timedelta(seconds=600)), now)


class TestCheckDue:
    """Tests for a single scheduler tick against the database."""

    @pytest.mark.asyncio
    async def test_triggers_due_teams_as_scheduled(
        self, coordinator, manifest_config, team, create_row, fetch_rows
    ):
        """Test that due teams are synced and recently synced teams are skipped."""
        recent = await create_row(Team, name="Search", key="search")
        await create_row(
            TeamManifestConfig,
            team_id=recent.id,
            manifest_url="https://manifests.example.com/search.json",
            last_sync_at=utc_now_naive(),
        )
        scheduler = ManifestSyncScheduler(coordinator)

        triggered = await scheduler.check_due()

        assert triggered == [team.id]
        [entry] = await fetch_rows(ManifestSyncHistory)
        assert entry.team_id == team.id
        assert entry.trigger_type == SyncTriggerType.SCHEDULED.value
        assert entry.triggered_by is None

        # The run updated last_sync_at, so the next tick has nothing to do
        assert await scheduler.check_due() == []

    @pytest.mark.asyncio
    async def test_skips_disabled_teams(self, coordinator, create_row, team):
        """Test that disabled configs are never triggered."""
        await create_row(
            TeamManifestConfig,
            team_id=team.id,
            manifest_url="https://manifests.example.com/payments.json",
            is_enabled=False,
        )

        assert await ManifestSyncScheduler(coordinator).check_due() == []

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_the_tick(self, session_factory, create_row):
        """Test that one failing team does not prevent the others."""
        teams = []
        for name in ("A", "B", "C"):
            team = await create_row(Team, name=name, key=name.lower())
            await create_row(
                TeamManifestConfig,
                team_id=team.id,
                manifest_url=f"https://manifests.example.com/{name}.json",
            )
            teams.append(team)

        coordinator = MagicMock()
        coordinator.is_syncing.return_value = False
        accepted = MagicMock(accepted=True)
        coordinator.run_sync = AsyncMock(
            side_effect=[NotFoundException("gone"), RuntimeError("boom"), accepted]
        )
        scheduler = ManifestSyncScheduler(coordinator, session_factory=session_factory)

        triggered = await scheduler.check_due()

        assert coordinator.run_sync.await_count == 3
        assert len(triggered) == 1
        for call in coordinator.run_sync.await_args_list:
            assert call.kwargs == {"trigger_type": SyncTriggerType.SCHEDULED}

    @pytest.mark.asyncio
    async def test_skips_teams_already_syncing(self, session_factory, manifest_config):
        """Test that teams with a run in flight are not triggered."""
        coordinator = MagicMock()
        coordinator.is_syncing.return_value = True
        coordinator.run_sync = AsyncMock()
        scheduler = ManifestSyncScheduler(coordinator, session_factory=session_factory)

        assert await scheduler.check_due() == []
        coordinator.run_sync.assert_not_awaited()


class TestLifecycle:
    """Tests for starting and stopping the loop."""

    @pytest.fixture
    def coordinator_mock(self, session_factory):
        """Coordinator stand-in with no due work."""
        coordinator = MagicMock()
        coordinator.session_factory = session_factory
        coordinator.shutdown = AsyncMock(return_value=True)
        coordinator.recorder.cleanup = AsyncMock(return_value=0)
        return coordinator

    @pytest.mark.asyncio
    async def test_start_and_stop(self, coordinator_mock, engine):
        """Test that the loop runs until stopped and waits for in-flight runs."""
        scheduler = ManifestSyncScheduler(coordinator_mock, check_interval=0.01)

        assert scheduler.start() is True
        assert scheduler.start() is True
        assert scheduler.is_running
        await asyncio.sleep(0.05)

        await scheduler.stop()

        assert not scheduler.is_running
        coordinator_mock.shutdown.assert_awaited_once()
        coordinator_mock.recorder.cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_disabled_by_settings(self, coordinator_mock, monkeypatch):
        """Test that the scheduler does not start when sync is disabled."""
        monkeypatch.setattr(settings, "MANIFEST_SYNC_ENABLED", False)
        scheduler = ManifestSyncScheduler(coordinator_mock)

        assert scheduler.start() is False
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_cleanup_runs_once_per_interval(self, coordinator_mock):
        """Test that history retention is not applied on every tick."""
        coordinator_mock.recorder.cleanup = AsyncMock(return_value=3)
        scheduler = ManifestSyncScheduler(coordinator_mock)

        assert await scheduler.cleanup_history() == 3
        assert await scheduler.cleanup_history() == 0
        coordinator_mock.recorder.cleanup.assert_awaited_once()
