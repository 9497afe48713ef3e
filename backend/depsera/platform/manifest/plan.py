"""Operation types produced by the diff engine.

Operations are plain dataclasses: the diff engine creates them, the drift detector may
narrow them, and the applier executes them kind by kind.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from depsera.core.shared_models import ManifestResourceKind


class RemovalMode(str, Enum):
    """How a removed item is handled."""

    DEACTIVATE = "deactivate"  # Services only: soft removal
    DELETE = "delete"  # Hard delete
    FLAG = "flag"  # Services only: leave in place, raise a removal drift flag


@dataclass
class BaseOperation:
    """Base class for all operations."""

    key: str  # Rendered natural key, used in logs and error messages


@dataclass
class CreateOperation(BaseOperation):
    """Item is in the manifest but not persisted."""

    desired: Any = None
    values: Dict[str, Any] = field(default_factory=dict)
    # Service fields under manifest authority, written into the synced snapshot
    managed_fields: List[str] = field(default_factory=list)


@dataclass
class UpdateOperation(BaseOperation):
    """Item is persisted and differs from the manifest."""

    current: Any = None
    desired: Any = None
    delta: Dict[str, Any] = field(default_factory=dict)
    reactivate: bool = False
    managed_fields: List[str] = field(default_factory=list)
    # Drifted fields left at their live value by the drift policy
    kept_local: List[str] = field(default_factory=list)


@dataclass
class RemoveOperation(BaseOperation):
    """Item is manifest-managed but no longer in the manifest."""

    current: Any = None
    mode: RemovalMode = RemovalMode.DELETE


@dataclass
class UnchangedOperation(BaseOperation):
    """Item matches the manifest (or is kept by policy)."""

    current: Any = None
    desired: Any = None
    managed_fields: List[str] = field(default_factory=list)
    kept_local: List[str] = field(default_factory=list)
    # The synced snapshot is stale even though live values match the manifest
    refresh_snapshot: bool = False


@dataclass
class KindPlan:
    """Operations for one resource kind."""

    kind: ManifestResourceKind
    creates: List[CreateOperation] = field(default_factory=list)
    updates: List[UpdateOperation] = field(default_factory=list)
    removes: List[RemoveOperation] = field(default_factory=list)
    unchanged: List[UnchangedOperation] = field(default_factory=list)

    def summary(self) -> str:
        """Get a summary string of the plan."""
        return (
            f"{self.kind.value}: {len(self.creates)} creates, {len(self.updates)} updates, "
            f"{len(self.removes)} removes, {len(self.unchanged)} unchanged"
        )


@dataclass
class SyncPlan:
    """Everything one run intends to do, in apply order."""

    services: KindPlan = field(
        default_factory=lambda: KindPlan(kind=ManifestResourceKind.SERVICES)
    )
    aliases: KindPlan = field(default_factory=lambda: KindPlan(kind=ManifestResourceKind.ALIASES))
    canonical_overrides: KindPlan = field(
        default_factory=lambda: KindPlan(kind=ManifestResourceKind.CANONICAL_OVERRIDES)
    )
    associations: KindPlan = field(
        default_factory=lambda: KindPlan(kind=ManifestResourceKind.ASSOCIATIONS)
    )

    def kinds(self) -> List[KindPlan]:
        """Kind plans in apply order."""
        return [self.services, self.aliases, self.canonical_overrides, self.associations]

    def find_service_op(self, service_id: Any) -> Optional[BaseOperation]:
        """Find the operation touching an existing service."""
        for op in [*self.services.updates, *self.services.unchanged, *self.services.removes]:
            if op.current is not None and op.current.id == service_id:
                return op
        return None

    def summary(self) -> str:
        """Get a summary string of the whole plan."""
        return "; ".join(kind.summary() for kind in self.kinds())
