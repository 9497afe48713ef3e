"""Schemas for the team manifest document."""

import re
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from depsera.core.shared_models import AssociationType

MANIFEST_VERSION = 1
MANIFEST_KEY_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")
MANIFEST_KEY_MAX_LENGTH = 128
MIN_POLL_INTERVAL_MS = 5000
MAX_POLL_INTERVAL_MS = 3_600_000

# Service fields that manifest sync can write and compare, in a stable order.
SYNCABLE_SERVICE_FIELDS = (
    "name",
    "health_endpoint",
    "description",
    "metrics_endpoint",
    "poll_interval_ms",
    "schema_config",
)


def _require_http_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be a valid http or https URL")
    return value


class _ManifestEntry(BaseModel):
    """Base for manifest entries. Unknown keys are ignored here and warned on upstream."""

    model_config = ConfigDict(extra="ignore")


class ManifestServiceEntry(_ManifestEntry):
    """A service declared in a manifest."""

    key: str = Field(
        ...,
        max_length=MANIFEST_KEY_MAX_LENGTH,
        description="Stable identifier linking the entry to its persisted service",
    )
    name: str = Field(..., min_length=1, description="Display name (globally unique)")
    health_endpoint: str = Field(..., description="URL polled for health")
    description: Optional[str] = Field(None, description="Free-form description")
    metrics_endpoint: Optional[str] = Field(None, description="Optional metrics URL")
    poll_interval_ms: Optional[int] = Field(
        None,
        ge=MIN_POLL_INTERVAL_MS,
        le=MAX_POLL_INTERVAL_MS,
        strict=True,
        description="Health poll interval in milliseconds",
    )
    schema_config: Optional[Dict[str, Any]] = Field(
        None, description="Custom health payload mapping"
    )

    @model_validator(mode="before")
    @classmethod
    def drop_null_poll_interval(cls, data: Any) -> Any:
        """An explicit null poll interval means "use the default"."""
        if isinstance(data, dict) and "poll_interval_ms" in data:
            if data["poll_interval_ms"] is not None:
                return data
            return {k: v for k, v in data.items() if k != "poll_interval_ms"}
        return data

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        """Keys are lowercase alphanumerics, hyphens and underscores."""
        if not MANIFEST_KEY_PATTERN.match(v):
            raise ValueError(
                "must start with a lowercase letter or digit and contain only "
                "lowercase letters, digits, hyphens and underscores"
            )
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Names cannot be blank."""
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("health_endpoint")
    @classmethod
    def validate_health_endpoint(cls, v: str) -> str:
        """Health endpoints must be http(s) URLs."""
        return _require_http_url(v)

    @field_validator("metrics_endpoint")
    @classmethod
    def validate_metrics_endpoint(cls, v: Optional[str]) -> Optional[str]:
        """Metrics endpoints, when given, must be http(s) URLs."""
        if v is None:
            return v
        return _require_http_url(v)


class ManifestAliasEntry(_ManifestEntry):
    """An alias mapping a reported dependency name to a canonical name."""

    alias: str = Field(..., min_length=1)
    canonical_name: str = Field(..., min_length=1)


class ManifestCanonicalOverrideEntry(_ManifestEntry):
    """Team-scoped contact/impact override for a canonical dependency."""

    canonical_name: str = Field(..., min_length=1)
    contact: Optional[Dict[str, Any]] = None
    impact: Optional[str] = None

    @model_validator(mode="after")
    def require_contact_or_impact(self) -> "ManifestCanonicalOverrideEntry":
        """At least one of contact and impact must be provided."""
        if self.contact is None and self.impact is None:
            raise ValueError("at least one of contact or impact is required")
        return self


class ManifestAssociationEntry(_ManifestEntry):
    """Association from a service's dependency to a linked service."""

    service_key: str = Field(..., min_length=1)
    dependency_name: str = Field(..., min_length=1)
    linked_service_key: str = Field(
        ...,
        min_length=1,
        description="Manifest key in the same team, or '<team_key>/<manifest_key>'",
    )
    association_type: AssociationType

    @property
    def natural_key(self) -> tuple:
        """Identity of the association within a team's manifest."""
        return (self.service_key, self.dependency_name, self.linked_service_key)


class ManifestDocument(BaseModel):
    """A fully validated manifest."""

    version: Literal[1] = MANIFEST_VERSION
    services: List[ManifestServiceEntry] = Field(default_factory=list)
    aliases: List[ManifestAliasEntry] = Field(default_factory=list)
    canonical_overrides: List[ManifestCanonicalOverrideEntry] = Field(default_factory=list)
    associations: List[ManifestAssociationEntry] = Field(default_factory=list)


class IssueSeverity(str, Enum):
    """Severity of a validation issue."""

    ERROR = "error"
    WARNING = "warning"


class ManifestValidationIssue(BaseModel):
    """A single problem found while validating a manifest."""

    severity: IssueSeverity
    path: str = Field(..., description="Location in the document, e.g. services[0].key")
    message: str

    def __str__(self) -> str:
        """Render as ``path: message``."""
        return f"{self.path}: {self.message}"
