"""Schemas for the Depsera backend."""

from depsera.schemas.drift_flag import DriftFlag, DriftFlagResolve, DriftSummary
from depsera.schemas.manifest import (
    IssueSeverity,
    ManifestAliasEntry,
    ManifestAssociationEntry,
    ManifestCanonicalOverrideEntry,
    ManifestDocument,
    ManifestServiceEntry,
    ManifestValidationIssue,
)
from depsera.schemas.manifest_config import (
    FieldDriftPolicy,
    ManifestSyncPolicy,
    MetadataRemovalPolicy,
    ServiceRemovalPolicy,
    TeamManifestConfig,
    TeamManifestConfigCreate,
    TeamManifestConfigUpdate,
)
from depsera.schemas.manifest_sync import (
    KindSummary,
    ManifestSyncChange,
    ManifestSyncHistory,
    ManifestSyncHistoryPage,
    ManifestSyncOutcome,
    ManifestSyncResult,
    ManifestSyncSummary,
    ServiceKindSummary,
    SyncOutcomeKind,
)
