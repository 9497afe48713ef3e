"""Tests for the reconciliation applier."""

import pytest
import pytest_asyncio

from depsera.core.shared_models import DriftFlagStatus, DriftType
from depsera.models import (
    CanonicalOverride,
    Dependency,
    DependencyAlias,
    DependencyAssociation,
    DriftFlag,
    Service,
    Team,
)
from depsera.platform.manifest.applier import ReconciliationApplier, _synced_values
from depsera.platform.manifest.differ import DiffEngine
from depsera.platform.manifest.drift import DriftReport
from depsera.platform.manifest.snapshot import StateSnapshotReader
from depsera.schemas.manifest import ManifestDocument, ManifestServiceEntry
from depsera.schemas.manifest_config import ManifestSyncPolicy


def service_entry(key: str, **overrides) -> dict:
    entry = {
        "key": key,
        "name": key.title(),
        "health_endpoint": f"https://{key}.example.com/health",
    }
    entry.update(overrides)
    return entry


@pytest.fixture
def applier(session_factory):
    """Applier bound to the test database."""
    return ReconciliationApplier(session_factory)


@pytest.fixture
def reconcile(session_factory, applier, team):
    """Diff a manifest against the team's state and apply the plan."""

    async def _reconcile(document: dict, policy: ManifestSyncPolicy = None):
        snapshot = await StateSnapshotReader(session_factory).read(team.id)
        plan = DiffEngine(excluded_fields=[]).diff(
            ManifestDocument.model_validate({"version": 1, **document}),
            snapshot,
            policy or ManifestSyncPolicy(),
        )
        return await applier.apply(team.id, plan, snapshot, DriftReport())

    return _reconcile


@pytest_asyncio.fixture
async def managed_api(create_row, team):
    """Service created by an earlier sync."""
    return await create_row(
        Service,
        team_id=team.id,
        name="Api",
        health_endpoint="https://api.example.com/health",
        manifest_key="api",
        manifest_managed=True,
        manifest_last_synced_values={
            "name": "Api",
            "health_endpoint": "https://api.example.com/health",
        },
    )


class TestServices:
    """Tests for service reconciliation."""

    @pytest.mark.asyncio
    async def test_creates_managed_services(self, reconcile, fetch_rows, team):
        """Test that new services are created as manifest-managed with a synced snapshot."""
        result = await reconcile(
            {"services": [service_entry("api", poll_interval_ms=60000), service_entry("web")]}
        )

        assert result.errors == []
        assert result.summary.services.created == 2
        services = {s.manifest_key: s for s in await fetch_rows(Service)}
        assert set(services) == {"api", "web"}
        api = services["api"]
        assert api.team_id == team.id
        assert api.manifest_managed is True
        assert api.is_active is True
        assert api.poll_interval_ms == 60000
        assert api.manifest_last_synced_values == {
            "name": "Api",
            "health_endpoint": "https://api.example.com/health",
            "poll_interval_ms": 60000,
        }
        assert [c.action for c in result.changes] == ["created", "created"]

    @pytest.mark.asyncio
    async def test_updates_only_changed_fields(self, reconcile, fetch_rows, managed_api):
        """Test that an update writes the delta and refreshes the snapshot."""
        result = await reconcile({"services": [service_entry("api", description="Public")]})

        assert result.summary.services.updated == 1
        [api] = await fetch_rows(Service)
        assert api.description == "Public"
        assert api.manifest_last_synced_values["description"] == "Public"
        assert result.changes[0].fields_changed == ["description"]

    @pytest.mark.asyncio
    async def test_unchanged_service_is_not_reported(self, reconcile, managed_api):
        """Test that a matching service is counted but produces no change entry."""
        result = await reconcile({"services": [service_entry("api")]})

        assert result.summary.services.unchanged == 1
        assert result.succeeded == 1
        assert result.changes == []

    @pytest.mark.asyncio
    async def test_deactivates_removed_service(
        self, reconcile, create_row, fetch_rows, team, managed_api
    ):
        """Test soft removal and that the service's open flags are resolved."""
        await create_row(
            DriftFlag,
            team_id=team.id,
            service_id=managed_api.id,
            drift_type=DriftType.FIELD_CHANGE.value,
            field_name="name",
            manifest_value="Api",
            current_value="Renamed",
        )

        result = await reconcile({"services": []})

        assert result.summary.services.deactivated == 1
        assert result.summary.services.removed == 1
        [api] = await fetch_rows(Service)
        assert api.is_active is False
        [flag] = await fetch_rows(DriftFlag)
        assert flag.status == DriftFlagStatus.RESOLVED.value

    @pytest.mark.asyncio
    async def test_deletes_removed_service(self, reconcile, fetch_rows, managed_api):
        """Test hard removal."""
        result = await reconcile({"services": []}, ManifestSyncPolicy(on_removal="delete"))

        assert result.summary.services.deleted == 1
        assert result.summary.services.removed == 1
        assert await fetch_rows(Service) == []

    @pytest.mark.asyncio
    async def test_flag_removal_leaves_service(self, reconcile, fetch_rows, managed_api):
        """Test that flag-mode removal writes nothing to the service."""
        result = await reconcile({"services": []}, ManifestSyncPolicy(on_removal="flag"))

        assert result.summary.services.removed == 0
        [api] = await fetch_rows(Service)
        assert api.is_active is True
        assert [c.action for c in result.changes] == ["drift_flagged"]

    @pytest.mark.asyncio
    async def test_reactivates_returning_service(self, reconcile, fetch_rows, create_row, team):
        """Test that a deactivated service declared again becomes active."""
        await create_row(
            Service,
            team_id=team.id,
            name="Api",
            health_endpoint="https://api.example.com/health",
            is_active=False,
            manifest_key="api",
            manifest_managed=True,
            manifest_last_synced_values={"name": "Api"},
        )

        result = await reconcile({"services": [service_entry("api")]})

        [api] = await fetch_rows(Service)
        assert api.is_active is True
        assert result.changes[0].fields_changed == ["is_active"]

    @pytest.mark.asyncio
    async def test_key_collision_with_unmanaged_service_fails_item_only(
        self, reconcile, create_row, fetch_rows, team
    ):
        """Test that one conflicting service fails while the rest are applied."""
        await create_row(
            Service,
            team_id=team.id,
            name="Legacy API",
            health_endpoint="https://legacy.example.com/health",
            manifest_key="api",
            manifest_managed=False,
        )

        result = await reconcile({"services": [service_entry("api"), service_entry("web")]})

        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.kind == "services"
        assert error.item_key == "api"
        assert "not managed by the manifest" in error.reason
        assert result.summary.services.created == 1
        keys = {s.manifest_key for s in await fetch_rows(Service, Service.manifest_managed)}
        assert keys == {"web"}

    @pytest.mark.asyncio
    async def test_name_collision_is_described(self, reconcile, create_row, team):
        """Test that a duplicate service name names the conflicting field."""
        await create_row(
            Service,
            team_id=team.id,
            name="Api",
            health_endpoint="https://legacy.example.com/health",
        )

        result = await reconcile({"services": [service_entry("api")]})

        assert len(result.errors) == 1
        assert result.errors[0].reason == (
            'name "Api" is already used by a service not managed by the manifest'
        )


class TestMetadata:
    """Tests for aliases, overrides and associations."""

    @pytest.mark.asyncio
    async def test_alias_lifecycle(self, reconcile, fetch_rows, team):
        """Test alias create, update and removal."""
        await reconcile({"aliases": [{"alias": "pg", "canonical_name": "postgres"}]})
        [alias] = await fetch_rows(DependencyAlias)
        assert alias.manifest_managed is True
        assert alias.manifest_team_id == team.id

        await reconcile({"aliases": [{"alias": "pg", "canonical_name": "postgresql"}]})
        [alias] = await fetch_rows(DependencyAlias)
        assert alias.canonical_name == "postgresql"

        result = await reconcile({"aliases": []})
        assert result.summary.aliases.removed == 1
        assert await fetch_rows(DependencyAlias) == []

    @pytest.mark.asyncio
    async def test_alias_owned_elsewhere_is_an_item_error(self, reconcile, create_row):
        """Test that aliases are unique across teams."""
        other = await create_row(Team, name="Search", key="search")
        await create_row(
            DependencyAlias,
            alias="pg",
            canonical_name="postgres",
            manifest_team_id=other.id,
            manifest_managed=True,
        )

        result = await reconcile({"aliases": [{"alias": "pg", "canonical_name": "postgres"}]})

        assert [e.item_key for e in result.errors] == ["pg"]
        assert "unique across all teams" in result.errors[0].reason

    @pytest.mark.asyncio
    async def test_association_waits_for_dependency(self, reconcile, fetch_rows, managed_api):
        """Test that an association on an undiscovered dependency is only a warning."""
        result = await reconcile(
            {
                "services": [service_entry("api")],
                "associations": [
                    {
                        "service_key": "api",
                        "dependency_name": "postgres",
                        "linked_service_key": "api",
                        "association_type": "database",
                    }
                ],
            }
        )

        assert result.errors == []
        assert result.warnings == [
            "associations 'api/postgres -> api': dependency \"postgres\" has not been "
            "discovered by polling yet"
        ]
        assert await fetch_rows(DependencyAssociation) == []

    @pytest.mark.asyncio
    async def test_association_to_another_team(
        self, reconcile, create_row, fetch_rows, managed_api
    ):
        """Test that a team-qualified linked key resolves across teams."""
        other = await create_row(Team, name="Billing", key="billing")
        billing_db = await create_row(
            Service,
            team_id=other.id,
            name="Billing DB",
            health_endpoint="https://db.billing.example.com/health",
            manifest_key="db",
            manifest_managed=True,
        )
        dependency = await create_row(Dependency, service_id=managed_api.id, name="postgres")
        document = {
            "services": [service_entry("api")],
            "associations": [
                {
                    "service_key": "api",
                    "dependency_name": "postgres",
                    "linked_service_key": "billing/db",
                    "association_type": "database",
                }
            ],
        }

        result = await reconcile(document)

        assert result.summary.associations.created == 1
        [association] = await fetch_rows(DependencyAssociation)
        assert association.dependency_id == dependency.id
        assert association.linked_service_id == billing_db.id
        assert association.manifest_managed is True

        again = await reconcile(document)
        assert again.summary.associations.unchanged == 1
        assert again.summary.associations.created == 0

    @pytest.mark.asyncio
    async def test_canonical_override_create(self, reconcile, fetch_rows, team):
        """Test that overrides are scoped to the team."""
        result = await reconcile(
            {"canonical_overrides": [{"canonical_name": "postgres", "impact": "Checkout down"}]}
        )

        assert result.summary.canonical_overrides.created == 1
        [override] = await fetch_rows(CanonicalOverride)
        assert override.team_id == team.id
        assert override.impact_override == "Checkout down"
        assert override.contact_override is None

    @pytest.mark.asyncio
    async def test_canonical_override_removed_from_manifest_is_deleted(
        self, reconcile, fetch_rows
    ):
        """Test that an override dropped from the manifest is deleted."""
        await reconcile(
            {"canonical_overrides": [{"canonical_name": "postgres", "impact": "Checkout down"}]}
        )
        assert len(await fetch_rows(CanonicalOverride)) == 1

        result = await reconcile({"canonical_overrides": []})

        assert result.errors == []
        assert result.summary.canonical_overrides.removed == 1
        assert await fetch_rows(CanonicalOverride) == []

    @pytest.mark.asyncio
    async def test_association_removed_from_manifest_is_deleted(
        self, reconcile, create_row, fetch_rows, team, managed_api
    ):
        """Test that an association dropped by a still-declared service is deleted."""
        await create_row(
            Service,
            team_id=team.id,
            name="Db",
            health_endpoint="https://db.example.com/health",
            manifest_key="db",
            manifest_managed=True,
        )
        await create_row(Dependency, service_id=managed_api.id, name="postgres")
        services = [service_entry("api"), service_entry("db")]
        await reconcile(
            {
                "services": services,
                "associations": [
                    {
                        "service_key": "api",
                        "dependency_name": "postgres",
                        "linked_service_key": "db",
                        "association_type": "database",
                    }
                ],
            }
        )
        assert len(await fetch_rows(DependencyAssociation)) == 1

        result = await reconcile({"services": services, "associations": []})

        assert result.errors == []
        assert result.summary.associations.removed == 1
        assert await fetch_rows(DependencyAssociation) == []

    @pytest.mark.asyncio
    async def test_association_never_attaches_to_unmanaged_service(
        self, reconcile, create_row, fetch_rows, team
    ):
        """Test that an association on a human-owned service's dependency is skipped."""
        legacy = await create_row(
            Service,
            team_id=team.id,
            name="Legacy",
            health_endpoint="https://legacy.example.com/health",
            manifest_key="api",
            manifest_managed=False,
        )
        await create_row(Dependency, service_id=legacy.id, name="postgres")

        result = await reconcile(
            {
                "services": [service_entry("api"), service_entry("web")],
                "associations": [
                    {
                        "service_key": "api",
                        "dependency_name": "postgres",
                        "linked_service_key": "web",
                        "association_type": "database",
                    }
                ],
            }
        )

        assert [(e.kind, e.item_key) for e in result.errors] == [("services", "api")]
        assert result.summary.associations.created == 0
        assert await fetch_rows(DependencyAssociation) == []
        assert result.warnings == [
            "associations 'api/postgres -> web': service \"api\" does not exist or is not "
            "managed by the manifest"
        ]


def test_synced_values_keep_baseline_for_local_fields():
    """Test that fields kept at their live value keep their previous baseline."""
    desired = ManifestServiceEntry(
        key="api", name="Api", health_endpoint="https://api.example.com/health"
    )

    synced = _synced_values(
        desired,
        ["name", "health_endpoint"],
        ["name"],
        {"name": "Old", "health_endpoint": "https://old.example.com"},
    )

    assert synced == {"name": "Old", "health_endpoint": "https://api.example.com/health"}
