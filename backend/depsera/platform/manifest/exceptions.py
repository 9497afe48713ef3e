"""Manifest sync exceptions.

Run-fatal errors (fetch, validation) stop a run before any state changes. Item errors
are recoverable: the item is recorded in the run's errors and the run continues.
"""

from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

if TYPE_CHECKING:
    from depsera.schemas.manifest import ManifestValidationIssue


class ManifestSyncError(Exception):
    """Base class for manifest sync errors."""

    pass


class ManifestFetchError(ManifestSyncError):
    """Raised when the manifest cannot be retrieved.

    This is a run-fatal error: the run is recorded as failed and nothing is applied.

    Examples:
    - Non-2xx response
    - Timeout or connection failure
    - Body larger than the configured limit
    - Host concurrency limit reached
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        """Create a new ManifestFetchError.

        Args:
            message: Human-readable reason
            status_code: HTTP status when the server answered with an error
        """
        self.status_code = status_code
        super().__init__(message)


class ManifestValidationError(ManifestSyncError):
    """Raised when the manifest fails parsing or schema validation.

    Carries every problem found, not just the first one. Run-fatal.
    """

    def __init__(
        self,
        issues: List["ManifestValidationIssue"],
        warnings: Optional[List["ManifestValidationIssue"]] = None,
    ):
        """Create a new ManifestValidationError.

        Args:
            issues: Error-severity issues
            warnings: Warning-severity issues found alongside the errors
        """
        self.issues = issues
        self.warnings = warnings or []
        super().__init__(f"Manifest validation failed with {len(issues)} error(s)")

    @property
    def messages(self) -> List[str]:
        """Issues rendered as ``path: message``."""
        return [str(issue) for issue in self.issues]


class ApplyItemError(ManifestSyncError):
    """Raised when a single item cannot be written.

    This is a recoverable error: the applier records it and continues with the
    remaining items of the same kind.
    """

    def __init__(self, kind: str, item_key: str, reason: str):
        """Create a new ApplyItemError.

        Args:
            kind: Resource kind (services, aliases, ...)
            item_key: Natural key of the failed item
            reason: Why the write failed
        """
        self.kind = kind
        self.item_key = item_key
        self.reason = reason
        super().__init__(f"{kind} '{item_key}': {reason}")


class SyncAlreadyRunningError(ManifestSyncError):
    """Raised when a run is requested for a team that already has one in flight."""

    def __init__(self, team_id: UUID):
        """Create a new SyncAlreadyRunningError."""
        self.team_id = team_id
        super().__init__("Sync already in progress for this team")
