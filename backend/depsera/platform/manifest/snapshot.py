"""Loads a team's persisted state for reconciliation."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from depsera import crud
from depsera.core.logging import ContextualLogger
from depsera.core.logging import logger as default_logger
from depsera.models import (
    CanonicalOverride,
    DependencyAlias,
    DependencyAssociation,
    DriftFlag,
    Service,
)

# (service manifest_key, dependency name, linked service key)
AssociationKey = Tuple[str, str, str]


@dataclass
class TeamStateSnapshot:
    """Persisted state of one team, indexed by natural key.

    Entities are detached from their session; writers must reload them by ID.
    """

    team_id: UUID
    team_key: Optional[str] = None

    # Manifest-managed services by manifest_key, including deactivated ones
    services: Dict[str, Service] = field(default_factory=dict)
    # Human-owned services of the team, used to explain collisions
    unmanaged_service_keys: Set[str] = field(default_factory=set)
    unmanaged_service_names: Set[str] = field(default_factory=set)

    aliases: Dict[str, DependencyAlias] = field(default_factory=dict)
    canonical_overrides: Dict[str, CanonicalOverride] = field(default_factory=dict)

    # Canonical key per managed association
    associations: Dict[AssociationKey, DependencyAssociation] = field(default_factory=dict)
    # Every key a manifest entry may use to refer to a managed association:
    # reported or canonical dependency name, bare or team-qualified linked key
    association_lookup: Dict[AssociationKey, DependencyAssociation] = field(
        default_factory=dict
    )

    open_drift_flags: List[DriftFlag] = field(default_factory=list)


class StateSnapshotReader:
    """Reads a consistent snapshot of a team's manifest-relevant state.

    Consistency relies on the coordinator's per-team lock: nothing else mutates
    the team's managed state while a run is in flight.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the reader.

        Args:
            session_factory: Factory for database sessions
            logger: Optional contextual logger
        """
        self._session_factory = session_factory
        self.logger = logger or default_logger.with_context(component="manifest_snapshot")

    async def read(self, team_id: UUID) -> TeamStateSnapshot:
        """Load the snapshot for a team.

        Args:
            team_id: Team ID

        Returns:
            TeamStateSnapshot
        """
        async with self._session_factory() as db:
            team = await crud.team.get(db, id=team_id)
            snapshot = TeamStateSnapshot(team_id=team_id, team_key=team.key if team else None)

            for svc in await crud.service.get_by_team(db, team_id=team_id):
                if svc.manifest_managed and svc.manifest_key:
                    snapshot.services[svc.manifest_key] = svc
                else:
                    snapshot.unmanaged_service_names.add(svc.name)
                    if svc.manifest_key:
                        snapshot.unmanaged_service_keys.add(svc.manifest_key)

            for alias in await crud.dependency_alias.get_manifest_managed(db, team_id=team_id):
                snapshot.aliases[alias.alias] = alias

            for override in await crud.canonical_override.get_manifest_managed(
                db, team_id=team_id
            ):
                snapshot.canonical_overrides[override.canonical_name] = override

            rows = await crud.dependency_association.get_manifest_managed(db, team_id=team_id)
            self._index_associations(snapshot, rows)

            snapshot.open_drift_flags = await crud.drift_flag.get_open_by_team(
                db, team_id=team_id
            )

        self.logger.debug(
            f"[ManifestSnapshot] Team {team_id}: {len(snapshot.services)} managed services, "
            f"{len(snapshot.aliases)} aliases, {len(snapshot.canonical_overrides)} overrides, "
            f"{len(snapshot.associations)} associations, "
            f"{len(snapshot.open_drift_flags)} open drift flags"
        )
        return snapshot

    def _index_associations(self, snapshot: TeamStateSnapshot, rows: list) -> None:
        for (
            association,
            owner_key,
            dep_name,
            dep_canonical,
            linked_key,
            linked_team_key,
            linked_team_id,
        ) in rows:
            if not owner_key or not linked_key:
                continue

            linked_forms = []
            if linked_team_key:
                linked_forms.append(f"{linked_team_key}/{linked_key}")
            if linked_team_id == snapshot.team_id:
                linked_forms.append(linked_key)
            if not linked_forms:
                continue
            dep_forms = [n for n in (dep_canonical, dep_name) if n]

            canonical_key = (owner_key, dep_forms[0], linked_forms[0])
            snapshot.associations[canonical_key] = association
            for dep_form in dep_forms:
                for linked_form in linked_forms:
                    snapshot.association_lookup[(owner_key, dep_form, linked_form)] = association
