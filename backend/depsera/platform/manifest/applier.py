"""Applies a sync plan to the database.

Each resource kind is applied in its own transaction, in the order services, aliases,
canonical overrides, associations, so a later kind can reference services created
earlier in the same run and a failure in one kind never rolls back an earlier one.
Inside a kind every item runs in a savepoint: a failed item is rolled back alone,
recorded as an ApplyItemError, and the remaining items proceed.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from depsera import crud
from depsera.core.logging import ContextualLogger
from depsera.core.logging import logger as default_logger
from depsera.core.shared_models import ManifestResourceKind
from depsera.db.unit_of_work import UnitOfWork
from depsera.models import Service
from depsera.platform.manifest.drift import DriftReport
from depsera.platform.manifest.exceptions import ApplyItemError
from depsera.platform.manifest.plan import (
    BaseOperation,
    CreateOperation,
    KindPlan,
    RemovalMode,
    RemoveOperation,
    SyncPlan,
    UnchangedOperation,
    UpdateOperation,
)
from depsera.platform.manifest.snapshot import TeamStateSnapshot
from depsera.schemas.manifest_sync import KindSummary, ManifestSyncChange, ManifestSyncSummary

# Item outcome names, also used as change actions
CREATED = "created"
UPDATED = "updated"
DEACTIVATED = "deactivated"
DELETED = "deleted"
REMOVED = "removed"
UNCHANGED = "unchanged"
DRIFT_FLAGGED = "drift_flagged"


class SkipItem(Exception):
    """Raised by an item handler when the item cannot be applied yet.

    The item is neither a success nor a failure; the reason becomes a warning.
    """

    pass


@dataclass
class ApplyResult:
    """Outcome of applying a plan."""

    summary: ManifestSyncSummary = field(default_factory=ManifestSyncSummary)
    errors: List[ApplyItemError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    changes: List[ManifestSyncChange] = field(default_factory=list)
    succeeded: int = 0

    @property
    def failed(self) -> int:
        """Number of items that failed."""
        return len(self.errors)


@dataclass
class _RunState:
    """Per-run context shared by the item handlers."""

    team_id: UUID
    snapshot: TeamStateSnapshot
    drift: DriftReport
    triggered_by: Optional[UUID]
    result: ApplyResult


ItemHandler = Callable[[AsyncSession, UnitOfWork, Any, _RunState], Awaitable[str]]


class ReconciliationApplier:
    """Executes a SyncPlan kind by kind."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the applier.

        Args:
            session_factory: Factory for database sessions
            logger: Optional contextual logger
        """
        self._session_factory = session_factory
        self.logger = logger or default_logger.with_context(component="manifest_applier")

    async def apply(
        self,
        team_id: UUID,
        plan: SyncPlan,
        snapshot: TeamStateSnapshot,
        drift: DriftReport,
        triggered_by: Optional[UUID] = None,
    ) -> ApplyResult:
        """Apply a plan.

        Args:
            team_id: Team ID
            plan: Plan to apply (after drift policy)
            snapshot: Snapshot the plan was computed from
            drift: Drift report for this run
            triggered_by: User who triggered the run, if any

        Returns:
            ApplyResult with counters, item errors, warnings and service changes
        """
        result = ApplyResult()
        result.summary.services.drift_flagged = drift.flagged
        state = _RunState(
            team_id=team_id,
            snapshot=snapshot,
            drift=drift,
            triggered_by=triggered_by,
            result=result,
        )

        handlers = {
            ManifestResourceKind.SERVICES: self._apply_service,
            ManifestResourceKind.ALIASES: self._apply_alias,
            ManifestResourceKind.CANONICAL_OVERRIDES: self._apply_canonical_override,
            ManifestResourceKind.ASSOCIATIONS: self._apply_association,
        }
        for kind_plan in plan.kinds():
            await self._apply_kind(kind_plan, handlers[kind_plan.kind], state)

        summary = result.summary.services
        summary.removed = summary.deactivated + summary.deleted

        self.logger.info(
            f"[ManifestApply] Team {team_id}: {result.succeeded} item(s) reconciled, "
            f"{result.failed} failed, {len(result.warnings)} warning(s)"
        )
        return result

    # ------------------------------------------------------------------
    # Kind loop
    # ------------------------------------------------------------------

    async def _apply_kind(
        self,
        kind_plan: KindPlan,
        handler: ItemHandler,
        state: _RunState,
    ) -> None:
        operations: Sequence[BaseOperation] = [
            *kind_plan.removes,
            *kind_plan.updates,
            *kind_plan.creates,
            *kind_plan.unchanged,
        ]
        if not operations:
            return

        counters = getattr(state.result.summary, kind_plan.kind.value)
        async with self._session_factory() as db:
            async with UnitOfWork(db) as uow:
                for op in operations:
                    try:
                        async with db.begin_nested():
                            outcome = await handler(db, uow, op, state)
                    except SkipItem as e:
                        state.result.warnings.append(f"{kind_plan.kind.value} '{op.key}': {e}")
                        continue
                    except ApplyItemError as e:
                        self._record_error(state, e)
                        continue
                    except SQLAlchemyError as e:
                        reason = self._describe(kind_plan.kind, op, e, state)
                        error = ApplyItemError(kind_plan.kind.value, op.key, reason)
                        self._record_error(state, error)
                        continue

                    self._count(counters, outcome)
                    state.result.succeeded += 1
                    if kind_plan.kind == ManifestResourceKind.SERVICES:
                        change = self._service_change(op, outcome, state)
                        if change.action != UNCHANGED or change.drift_fields:
                            state.result.changes.append(change)

                await uow.commit()

        self.logger.debug(f"[ManifestApply] Applied {kind_plan.summary()}")

    def _record_error(self, state: _RunState, error: ApplyItemError) -> None:
        self.logger.warning(f"[ManifestApply] Item failed: {error}")
        state.result.errors.append(error)

    @staticmethod
    def _count(counters: KindSummary, outcome: str) -> None:
        if outcome in (CREATED, UPDATED, UNCHANGED, DEACTIVATED, DELETED):
            setattr(counters, outcome, getattr(counters, outcome) + 1)
        elif outcome == REMOVED:
            counters.removed += 1

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    async def _apply_service(
        self, db: AsyncSession, uow: UnitOfWork, op: BaseOperation, state: _RunState
    ) -> str:
        if isinstance(op, CreateOperation):
            await crud.service.create(
                db,
                obj_in={
                    **op.values,
                    "team_id": state.team_id,
                    "manifest_key": op.key,
                    "manifest_managed": True,
                    "is_active": True,
                    "manifest_last_synced_values": _synced_values(
                        op.desired, op.managed_fields, [], None
                    ),
                },
                uow=uow,
            )
            return CREATED

        if isinstance(op, UnchangedOperation) and not op.refresh_snapshot:
            return UNCHANGED

        db_obj = await self._load_service(db, op)

        if isinstance(op, UpdateOperation):
            values: Dict[str, Any] = dict(op.delta)
            if op.reactivate:
                values["is_active"] = True
            values["manifest_last_synced_values"] = _synced_values(
                op.desired, op.managed_fields, op.kept_local, db_obj.manifest_last_synced_values
            )
            await crud.service.update(db, db_obj=db_obj, obj_in=values, uow=uow)
            return UPDATED

        if isinstance(op, UnchangedOperation):
            await crud.service.update(
                db,
                db_obj=db_obj,
                obj_in={
                    "manifest_last_synced_values": _synced_values(
                        op.desired,
                        op.managed_fields,
                        op.kept_local,
                        db_obj.manifest_last_synced_values,
                    )
                },
                uow=uow,
            )
            return UNCHANGED

        if isinstance(op, RemoveOperation):
            if op.mode == RemovalMode.FLAG:
                return DRIFT_FLAGGED
            await crud.drift_flag.resolve_all_for_service(db, service_id=db_obj.id, uow=uow)
            if op.mode == RemovalMode.DELETE:
                await crud.service.remove(db, id=db_obj.id, uow=uow)
                return DELETED
            await crud.service.set_active(db, id=db_obj.id, is_active=False, uow=uow)
            return DEACTIVATED

        raise TypeError(f"Unsupported operation {type(op).__name__}")

    async def _load_service(self, db: AsyncSession, op: BaseOperation) -> Service:
        db_obj = await crud.service.get(db, id=op.current.id)
        if db_obj is None:
            raise ApplyItemError(
                ManifestResourceKind.SERVICES.value, op.key, "service no longer exists"
            )
        return db_obj

    def _service_change(
        self, op: BaseOperation, outcome: str, state: _RunState
    ) -> ManifestSyncChange:
        desired = getattr(op, "desired", None)
        current = getattr(op, "current", None)
        name = desired.name if desired is not None else current.name
        fields_changed: List[str] = []
        if isinstance(op, CreateOperation):
            fields_changed = list(op.values)
        elif isinstance(op, UpdateOperation):
            fields_changed = list(op.delta) + (["is_active"] if op.reactivate else [])
        drift_fields = state.drift.fields_for(current.id) if current is not None else []
        return ManifestSyncChange(
            manifest_key=op.key,
            service_name=name,
            action=outcome,
            fields_changed=fields_changed,
            drift_fields=drift_fields,
        )

    # ------------------------------------------------------------------
    # Aliases and canonical overrides
    # ------------------------------------------------------------------

    async def _apply_alias(
        self, db: AsyncSession, uow: UnitOfWork, op: BaseOperation, state: _RunState
    ) -> str:
        kind = ManifestResourceKind.ALIASES.value
        if isinstance(op, CreateOperation):
            await crud.dependency_alias.create(
                db,
                obj_in={
                    **op.values,
                    "manifest_team_id": state.team_id,
                    "manifest_managed": True,
                },
                uow=uow,
            )
            return CREATED
        if isinstance(op, UnchangedOperation):
            return UNCHANGED

        db_obj = await crud.dependency_alias.get(db, id=op.current.id)
        if db_obj is None:
            raise ApplyItemError(kind, op.key, "alias no longer exists")
        if isinstance(op, UpdateOperation):
            await crud.dependency_alias.update(db, db_obj=db_obj, obj_in=op.delta, uow=uow)
            return UPDATED
        await crud.dependency_alias.remove(db, id=db_obj.id, uow=uow)
        return REMOVED

    async def _apply_canonical_override(
        self, db: AsyncSession, uow: UnitOfWork, op: BaseOperation, state: _RunState
    ) -> str:
        kind = ManifestResourceKind.CANONICAL_OVERRIDES.value
        if isinstance(op, CreateOperation):
            await crud.canonical_override.create(
                db,
                obj_in={
                    **op.values,
                    "team_id": state.team_id,
                    "manifest_managed": True,
                    "updated_by": state.triggered_by,
                },
                uow=uow,
            )
            return CREATED
        if isinstance(op, UnchangedOperation):
            return UNCHANGED

        db_obj = await crud.canonical_override.get(db, id=op.current.id)
        if db_obj is None:
            raise ApplyItemError(kind, op.key, "override no longer exists")
        if isinstance(op, UpdateOperation):
            await crud.canonical_override.update(
                db,
                db_obj=db_obj,
                obj_in={**op.delta, "updated_by": state.triggered_by},
                uow=uow,
            )
            return UPDATED
        await crud.canonical_override.remove(db, id=db_obj.id, uow=uow)
        return REMOVED

    # ------------------------------------------------------------------
    # Associations
    # ------------------------------------------------------------------

    async def _apply_association(
        self, db: AsyncSession, uow: UnitOfWork, op: BaseOperation, state: _RunState
    ) -> str:
        kind = ManifestResourceKind.ASSOCIATIONS.value
        if isinstance(op, CreateOperation):
            entry = op.desired
            owners = await crud.service.get_manifest_managed(
                db, state.team_id, manifest_keys=[entry.service_key]
            )
            if not owners:
                raise SkipItem(
                    f'service "{entry.service_key}" does not exist or is not managed by '
                    "the manifest"
                )
            owner = owners[0]

            dependency = await crud.dependency.get_by_service_and_name(
                db, service_id=owner.id, name=entry.dependency_name
            )
            if dependency is None:
                raise SkipItem(
                    f'dependency "{entry.dependency_name}" has not been discovered by '
                    "polling yet"
                )

            linked = await self._resolve_linked_service(db, state.team_id, entry.linked_service_key)
            if linked is None:
                raise SkipItem(f'linked service "{entry.linked_service_key}" does not exist')

            await crud.dependency_association.create(
                db,
                obj_in={
                    **op.values,
                    "dependency_id": dependency.id,
                    "linked_service_id": linked.id,
                    "manifest_managed": True,
                },
                uow=uow,
            )
            return CREATED
        if isinstance(op, UnchangedOperation):
            return UNCHANGED

        db_obj = await crud.dependency_association.get(db, id=op.current.id)
        if db_obj is None:
            raise ApplyItemError(kind, op.key, "association no longer exists")
        if isinstance(op, UpdateOperation):
            await crud.dependency_association.update(db, db_obj=db_obj, obj_in=op.delta, uow=uow)
            return UPDATED
        await crud.dependency_association.remove(db, id=db_obj.id, uow=uow)
        return REMOVED

    async def _resolve_linked_service(
        self, db: AsyncSession, team_id: UUID, linked_key: str
    ) -> Optional[Service]:
        """Resolve ``<key>`` within the team or ``<team_key>/<key>`` across teams."""
        if "/" in linked_key:
            team_key, manifest_key = linked_key.split("/", 1)
            team_ids = await crud.team.get_ids_by_keys(db, [team_key])
            if team_key not in team_ids:
                return None
            target_team_id = team_ids[team_key]
        else:
            target_team_id, manifest_key = team_id, linked_key
        services = await crud.service.get_by_manifest_keys(db, target_team_id, [manifest_key])
        return services.get(manifest_key)

    # ------------------------------------------------------------------
    # Error descriptions
    # ------------------------------------------------------------------

    def _describe(
        self,
        kind: ManifestResourceKind,
        op: BaseOperation,
        exc: SQLAlchemyError,
        state: _RunState,
    ) -> str:
        """Turn a database error for one item into an operator-facing reason."""
        detail = str(getattr(exc, "orig", None) or exc)
        if not isinstance(exc, IntegrityError):
            return f"database error: {detail}"

        if kind == ManifestResourceKind.SERVICES and isinstance(op, CreateOperation):
            snapshot = state.snapshot
            if op.key in snapshot.unmanaged_service_keys:
                return (
                    f'manifest key "{op.key}" is already used by a service not managed '
                    "by the manifest"
                )
            if op.desired.name in snapshot.unmanaged_service_names:
                return (
                    f'name "{op.desired.name}" is already used by a service not managed '
                    "by the manifest"
                )
            return f"conflicts with an existing service ({detail})"
        if kind == ManifestResourceKind.ALIASES:
            return "conflicts with an existing alias; aliases must be unique across all teams"
        if kind == ManifestResourceKind.CANONICAL_OVERRIDES:
            return "conflicts with an existing override for this canonical name"
        if kind == ManifestResourceKind.ASSOCIATIONS:
            return "an association between this dependency and linked service already exists"
        return f"constraint violation ({detail})"


def _synced_values(
    desired: Any,
    managed_fields: List[str],
    kept_local: List[str],
    previous: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    """Build the synced-values snapshot for a service.

    Managed fields take the manifest value just written. Fields kept at their live
    value by the drift policy keep their previous baseline so the drift stays visible.
    """
    previous = previous or {}
    synced: Dict[str, Any] = {}
    for name in managed_fields:
        if name in kept_local:
            if name in previous:
                synced[name] = previous[name]
        else:
            synced[name] = getattr(desired, name)
    return synced
