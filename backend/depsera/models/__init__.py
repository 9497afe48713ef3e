"""Models for the Depsera backend."""

from depsera.models._base import Base
from depsera.models.canonical_override import CanonicalOverride
from depsera.models.dependency import Dependency
from depsera.models.dependency_alias import DependencyAlias
from depsera.models.dependency_association import DependencyAssociation
from depsera.models.drift_flag import DriftFlag
from depsera.models.manifest_config import TeamManifestConfig
from depsera.models.manifest_sync_history import ManifestSyncHistory
from depsera.models.service import Service
from depsera.models.team import Team

__all__ = [
    "Base",
    "CanonicalOverride",
    "Dependency",
    "DependencyAlias",
    "DependencyAssociation",
    "DriftFlag",
    "ManifestSyncHistory",
    "Service",
    "Team",
    "TeamManifestConfig",
]
