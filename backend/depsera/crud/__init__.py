"""CRUD singletons for the Depsera backend."""

from depsera.crud.crud_canonical_override import canonical_override
from depsera.crud.crud_dependency import dependency
from depsera.crud.crud_dependency_alias import dependency_alias
from depsera.crud.crud_dependency_association import dependency_association
from depsera.crud.crud_drift_flag import drift_flag
from depsera.crud.crud_manifest_config import manifest_config
from depsera.crud.crud_manifest_sync_history import manifest_sync_history
from depsera.crud.crud_service import service
from depsera.crud.crud_team import team
