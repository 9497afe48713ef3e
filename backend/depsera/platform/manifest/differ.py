"""Computes the operations that bring persisted state in line with a manifest.

The diff is pure: it reads a ManifestDocument and a TeamStateSnapshot and returns a
SyncPlan without touching the database.
"""

import json
from typing import Any, Dict, Iterable, List, Optional, Set

from depsera.core.config import settings
from depsera.core.logging import ContextualLogger
from depsera.core.logging import logger as default_logger
from depsera.models import Service
from depsera.platform.manifest.plan import (
    CreateOperation,
    RemovalMode,
    RemoveOperation,
    SyncPlan,
    UnchangedOperation,
    UpdateOperation,
)
from depsera.platform.manifest.snapshot import TeamStateSnapshot
from depsera.schemas.manifest import (
    SYNCABLE_SERVICE_FIELDS,
    ManifestAssociationEntry,
    ManifestDocument,
    ManifestServiceEntry,
)
from depsera.schemas.manifest_config import (
    ManifestSyncPolicy,
    MetadataRemovalPolicy,
    ServiceRemovalPolicy,
)

_SERVICE_REMOVAL_MODES = {
    ServiceRemovalPolicy.DEACTIVATE: RemovalMode.DEACTIVATE,
    ServiceRemovalPolicy.DELETE: RemovalMode.DELETE,
    ServiceRemovalPolicy.FLAG: RemovalMode.FLAG,
}


def normalize_value(value: Any) -> str:
    """Normalise a field value for comparison.

    None becomes the empty string, objects become canonical JSON and everything else
    is stringified, so that e.g. ``30000`` and ``"30000"`` compare equal.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    return str(value)


def managed_service_fields(entry: ManifestServiceEntry, excluded: Iterable[str]) -> List[str]:
    """Fields of a service the manifest is authoritative for.

    Only fields present in the manifest entry count; excluded fields never do.
    """
    excluded = set(excluded)
    return [
        f for f in SYNCABLE_SERVICE_FIELDS if f in entry.model_fields_set and f not in excluded
    ]


def association_label(entry: ManifestAssociationEntry) -> str:
    """Human-readable key for an association entry."""
    return f"{entry.service_key}/{entry.dependency_name} -> {entry.linked_service_key}"


class DiffEngine:
    """Joins desired state with persisted state per resource kind."""

    def __init__(
        self,
        excluded_fields: Optional[Iterable[str]] = None,
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the diff engine.

        Args:
            excluded_fields: Service fields never compared or overwritten, on top of
                the team policy (defaults to MANIFEST_SYNC_EXCLUDED_FIELDS)
            logger: Optional contextual logger
        """
        self.excluded_fields: Set[str] = set(
            excluded_fields
            if excluded_fields is not None
            else settings.MANIFEST_SYNC_EXCLUDED_FIELDS
        )
        self.logger = logger or default_logger.with_context(component="manifest_differ")

    def effective_exclusions(self, policy: ManifestSyncPolicy) -> Set[str]:
        """Exclusions from configuration plus the team policy."""
        return self.excluded_fields | set(policy.excluded_fields)

    def diff(
        self,
        document: ManifestDocument,
        snapshot: TeamStateSnapshot,
        policy: ManifestSyncPolicy,
    ) -> SyncPlan:
        """Compute the plan for one run.

        Args:
            document: Validated manifest
            snapshot: Persisted state of the team
            policy: Team sync policy

        Returns:
            SyncPlan with operations for every kind
        """
        plan = SyncPlan()
        excluded = self.effective_exclusions(policy)

        self._diff_services(plan, document, snapshot, policy, excluded)
        self._diff_aliases(plan, document, snapshot, policy)
        self._diff_canonical_overrides(plan, document, snapshot, policy)
        self._diff_associations(plan, document, snapshot, policy)

        self.logger.debug(f"[ManifestDiff] {plan.summary()}")
        return plan

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def _diff_services(
        self,
        plan: SyncPlan,
        document: ManifestDocument,
        snapshot: TeamStateSnapshot,
        policy: ManifestSyncPolicy,
        excluded: Set[str],
    ) -> None:
        desired_keys = set()
        for entry in document.services:
            desired_keys.add(entry.key)
            fields = managed_service_fields(entry, excluded)
            current = snapshot.services.get(entry.key)

            if current is None:
                # Creation writes every declared field; exclusions only protect
                # values that already exist.
                values = {
                    f: getattr(entry, f)
                    for f in SYNCABLE_SERVICE_FIELDS
                    if f in entry.model_fields_set
                }
                plan.services.creates.append(
                    CreateOperation(
                        key=entry.key, desired=entry, values=values, managed_fields=fields
                    )
                )
                continue

            delta = {
                f: getattr(entry, f)
                for f in fields
                if normalize_value(getattr(current, f)) != normalize_value(getattr(entry, f))
            }
            reactivate = not current.is_active
            if delta or reactivate:
                plan.services.updates.append(
                    UpdateOperation(
                        key=entry.key,
                        current=current,
                        desired=entry,
                        delta=delta,
                        reactivate=reactivate,
                        managed_fields=fields,
                    )
                )
            else:
                plan.services.unchanged.append(
                    UnchangedOperation(
                        key=entry.key,
                        current=current,
                        desired=entry,
                        managed_fields=fields,
                        refresh_snapshot=self._snapshot_is_stale(current, entry, fields),
                    )
                )

        mode = _SERVICE_REMOVAL_MODES[policy.on_removal]
        for key, current in snapshot.services.items():
            if key in desired_keys:
                continue
            if mode == RemovalMode.DEACTIVATE and not current.is_active:
                plan.services.unchanged.append(UnchangedOperation(key=key, current=current))
                continue
            plan.services.removes.append(RemoveOperation(key=key, current=current, mode=mode))

    @staticmethod
    def _snapshot_is_stale(
        current: Service, entry: ManifestServiceEntry, fields: List[str]
    ) -> bool:
        synced = current.manifest_last_synced_values
        if synced is None:
            return True
        return any(
            f not in synced or normalize_value(synced[f]) != normalize_value(getattr(entry, f))
            for f in fields
        )

    # ------------------------------------------------------------------
    # Metadata kinds
    # ------------------------------------------------------------------

    def _diff_aliases(
        self,
        plan: SyncPlan,
        document: ManifestDocument,
        snapshot: TeamStateSnapshot,
        policy: ManifestSyncPolicy,
    ) -> None:
        desired = set()
        for entry in document.aliases:
            desired.add(entry.alias)
            current = snapshot.aliases.get(entry.alias)
            if current is None:
                plan.aliases.creates.append(
                    CreateOperation(
                        key=entry.alias,
                        desired=entry,
                        values={"alias": entry.alias, "canonical_name": entry.canonical_name},
                    )
                )
            elif current.canonical_name != entry.canonical_name:
                plan.aliases.updates.append(
                    UpdateOperation(
                        key=entry.alias,
                        current=current,
                        desired=entry,
                        delta={"canonical_name": entry.canonical_name},
                    )
                )
            else:
                plan.aliases.unchanged.append(
                    UnchangedOperation(key=entry.alias, current=current, desired=entry)
                )

        for alias, current in snapshot.aliases.items():
            if alias in desired:
                continue
            if policy.on_alias_removal == MetadataRemovalPolicy.REMOVE:
                plan.aliases.removes.append(RemoveOperation(key=alias, current=current))
            else:
                plan.aliases.unchanged.append(UnchangedOperation(key=alias, current=current))

    def _diff_canonical_overrides(
        self,
        plan: SyncPlan,
        document: ManifestDocument,
        snapshot: TeamStateSnapshot,
        policy: ManifestSyncPolicy,
    ) -> None:
        kind = plan.canonical_overrides
        desired = set()
        for entry in document.canonical_overrides:
            desired.add(entry.canonical_name)
            values = {"contact_override": entry.contact, "impact_override": entry.impact}
            current = snapshot.canonical_overrides.get(entry.canonical_name)
            if current is None:
                kind.creates.append(
                    CreateOperation(
                        key=entry.canonical_name,
                        desired=entry,
                        values={"canonical_name": entry.canonical_name, **values},
                    )
                )
                continue

            delta = {
                f: v
                for f, v in values.items()
                if normalize_value(getattr(current, f)) != normalize_value(v)
            }
            if delta:
                kind.updates.append(
                    UpdateOperation(
                        key=entry.canonical_name, current=current, desired=entry, delta=delta
                    )
                )
            else:
                kind.unchanged.append(
                    UnchangedOperation(key=entry.canonical_name, current=current, desired=entry)
                )

        for name, current in snapshot.canonical_overrides.items():
            if name in desired:
                continue
            if policy.on_override_removal == MetadataRemovalPolicy.REMOVE:
                kind.removes.append(RemoveOperation(key=name, current=current))
            else:
                kind.unchanged.append(UnchangedOperation(key=name, current=current))

    def _diff_associations(
        self,
        plan: SyncPlan,
        document: ManifestDocument,
        snapshot: TeamStateSnapshot,
        policy: ManifestSyncPolicy,
    ) -> None:
        kind = plan.associations
        desired_service_keys = {entry.key for entry in document.services}
        matched_ids = set()

        for entry in document.associations:
            label = association_label(entry)
            current = snapshot.association_lookup.get(entry.natural_key)
            if current is None:
                kind.creates.append(
                    CreateOperation(
                        key=label,
                        desired=entry,
                        values={"association_type": entry.association_type.value},
                    )
                )
                continue

            matched_ids.add(current.id)
            if current.association_type != entry.association_type.value:
                kind.updates.append(
                    UpdateOperation(
                        key=label,
                        current=current,
                        desired=entry,
                        delta={"association_type": entry.association_type.value},
                    )
                )
            else:
                kind.unchanged.append(UnchangedOperation(key=label, current=current, desired=entry))

        for (service_key, dep_name, linked_key), current in snapshot.associations.items():
            if current.id in matched_ids:
                continue
            label = f"{service_key}/{dep_name} -> {linked_key}"
            # Associations of services leaving the manifest stay with the
            # (deactivated) service.
            if (
                service_key in desired_service_keys
                and policy.on_association_removal == MetadataRemovalPolicy.REMOVE
            ):
                kind.removes.append(RemoveOperation(key=label, current=current))
            else:
                kind.unchanged.append(UnchangedOperation(key=label, current=current))
