"""Drift detection for manifest-managed services.

Drift is a manifest-owned field whose live value no longer matches what sync last
wrote, meaning someone edited it by hand. Each run first resolves open flags that
have converged, then records new drift, then applies the team's drift policy to the
plan before anything is written.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from depsera import crud
from depsera.core.logging import ContextualLogger
from depsera.core.logging import logger as default_logger
from depsera.core.shared_models import DriftFlagStatus, DriftType
from depsera.db.unit_of_work import UnitOfWork
from depsera.platform.manifest.differ import normalize_value
from depsera.platform.manifest.plan import (
    RemovalMode,
    SyncPlan,
    UnchangedOperation,
    UpdateOperation,
)
from depsera.platform.manifest.snapshot import TeamStateSnapshot
from depsera.schemas.manifest_config import FieldDriftPolicy, ManifestSyncPolicy

MatchedOperation = Union[UpdateOperation, UnchangedOperation]


@dataclass
class FieldDrift:
    """A manifest-owned field edited outside of sync."""

    service_id: UUID
    service_key: str
    field_name: str
    manifest_value: str
    current_value: str


@dataclass
class DriftReport:
    """What the drift detector did during one run."""

    resolved: int = 0
    flagged: int = 0
    drifts: List[FieldDrift] = field(default_factory=list)
    removal_flagged: List[UUID] = field(default_factory=list)

    def fields_for(self, service_id: UUID) -> List[str]:
        """Drifted field names for a service."""
        return [d.field_name for d in self.drifts if d.service_id == service_id]


class DriftDetector:
    """Resolves converged drift, detects new drift and applies the drift policy."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the detector.

        Args:
            session_factory: Factory for database sessions
            logger: Optional contextual logger
        """
        self._session_factory = session_factory
        self.logger = logger or default_logger.with_context(component="manifest_drift")

    async def run(
        self,
        team_id: UUID,
        plan: SyncPlan,
        snapshot: TeamStateSnapshot,
        policy: ManifestSyncPolicy,
        sync_history_id: UUID,
    ) -> DriftReport:
        """Run drift handling for one sync.

        Args:
            team_id: Team ID
            plan: Plan from the diff engine; narrowed in place by non-default policies
            snapshot: Snapshot the plan was computed from
            policy: Team sync policy
            sync_history_id: ID of the run, recorded on flags it raises or confirms

        Returns:
            DriftReport
        """
        report = DriftReport()
        converged = self.find_converged(plan, snapshot)
        report.drifts = self.detect(plan)
        self.apply_policy(plan, report.drifts, policy.on_field_drift)

        async with self._session_factory() as db:
            async with UnitOfWork(db) as uow:
                report.resolved = await crud.drift_flag.resolve_many(db, ids=converged, uow=uow)

                if policy.on_field_drift != FieldDriftPolicy.LOCAL_WINS:
                    for drift in report.drifts:
                        flag, _ = await crud.drift_flag.upsert_field_drift(
                            db,
                            team_id=team_id,
                            service_id=drift.service_id,
                            field_name=drift.field_name,
                            manifest_value=drift.manifest_value,
                            current_value=drift.current_value,
                            sync_history_id=sync_history_id,
                            uow=uow,
                        )
                        if flag.status == DriftFlagStatus.PENDING.value:
                            report.flagged += 1

                for op in plan.services.removes:
                    if op.mode != RemovalMode.FLAG:
                        continue
                    flag, _ = await crud.drift_flag.upsert_removal_drift(
                        db,
                        team_id=team_id,
                        service_id=op.current.id,
                        sync_history_id=sync_history_id,
                        uow=uow,
                    )
                    report.removal_flagged.append(op.current.id)
                    if flag.status == DriftFlagStatus.PENDING.value:
                        report.flagged += 1

                await uow.commit()

        if report.resolved or report.drifts or report.removal_flagged:
            self.logger.info(
                f"[ManifestDrift] Team {team_id}: resolved {report.resolved} flag(s), "
                f"detected {len(report.drifts)} field drift(s), "
                f"{len(report.removal_flagged)} removal flag(s)"
            )
        return report

    # ------------------------------------------------------------------
    # Pure steps
    # ------------------------------------------------------------------

    def find_converged(self, plan: SyncPlan, snapshot: TeamStateSnapshot) -> List[UUID]:
        """Open flags whose divergence no longer exists.

        A field flag converges when the live value equals the manifest value, when the
        field left manifest authority, or when the service left the manifest. A removal
        flag converges when the service is back in the manifest.
        """
        converged = []
        for flag in snapshot.open_drift_flags:
            op = plan.find_service_op(flag.service_id)
            in_manifest = isinstance(op, (UpdateOperation, UnchangedOperation)) and (
                op.desired is not None
            )

            if flag.drift_type == DriftType.SERVICE_REMOVAL.value:
                if in_manifest:
                    converged.append(flag.id)
                continue

            if not in_manifest or flag.field_name not in op.managed_fields:
                converged.append(flag.id)
                continue

            live = normalize_value(getattr(op.current, flag.field_name))
            if live == normalize_value(getattr(op.desired, flag.field_name)):
                converged.append(flag.id)
        return converged

    def detect(self, plan: SyncPlan) -> List[FieldDrift]:
        """Find managed fields edited since the last sync.

        Only services with a synced snapshot are considered. A field whose live value
        already equals the manifest value is not drift, even if it moved since the
        last sync.
        """
        drifts = []
        matched: List[MatchedOperation] = [*plan.services.updates, *plan.services.unchanged]
        for op in matched:
            if op.desired is None:
                continue
            synced: Optional[Dict] = op.current.manifest_last_synced_values
            if synced is None:
                continue
            for field_name in op.managed_fields:
                if field_name not in synced:
                    continue
                live = normalize_value(getattr(op.current, field_name))
                desired = normalize_value(getattr(op.desired, field_name))
                if live != normalize_value(synced[field_name]) and live != desired:
                    drifts.append(
                        FieldDrift(
                            service_id=op.current.id,
                            service_key=op.key,
                            field_name=field_name,
                            manifest_value=desired,
                            current_value=live,
                        )
                    )
        return drifts

    def apply_policy(
        self,
        plan: SyncPlan,
        drifts: List[FieldDrift],
        policy: FieldDriftPolicy,
    ) -> None:
        """Narrow the plan according to the field drift policy.

        ``manifest_wins`` leaves the plan alone. ``flag`` and ``local_wins`` drop drifted
        fields from updates; an update left with nothing to write becomes unchanged.
        """
        if policy == FieldDriftPolicy.MANIFEST_WINS or not drifts:
            return

        kept: Dict[UUID, List[str]] = {}
        for drift in drifts:
            kept.setdefault(drift.service_id, []).append(drift.field_name)

        remaining = []
        for op in plan.services.updates:
            fields = kept.get(op.current.id)
            if not fields:
                remaining.append(op)
                continue
            op.kept_local = fields
            op.delta = {f: v for f, v in op.delta.items() if f not in fields}
            if op.delta or op.reactivate:
                remaining.append(op)
            else:
                plan.services.unchanged.append(
                    UnchangedOperation(
                        key=op.key,
                        current=op.current,
                        desired=op.desired,
                        managed_fields=op.managed_fields,
                        kept_local=fields,
                        refresh_snapshot=True,
                    )
                )
        plan.services.updates = remaining
