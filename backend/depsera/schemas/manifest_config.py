"""Schemas for team manifest configuration and sync policy."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from depsera.schemas.manifest import SYNCABLE_SERVICE_FIELDS


class FieldDriftPolicy(str, Enum):
    """What to do when a manifest-managed field was edited by hand."""

    MANIFEST_WINS = "manifest_wins"  # Flag the drift, overwrite with the manifest value
    FLAG = "flag"  # Flag the drift, keep the live value while it is open
    LOCAL_WINS = "local_wins"  # Keep the live value, record nothing


class ServiceRemovalPolicy(str, Enum):
    """What to do with a managed service that disappeared from the manifest."""

    DEACTIVATE = "deactivate"
    DELETE = "delete"
    FLAG = "flag"


class MetadataRemovalPolicy(str, Enum):
    """What to do with a managed alias/override/association missing from the manifest."""

    REMOVE = "remove"
    KEEP = "keep"


class ManifestSyncPolicy(BaseModel):
    """Per-team sync policy stored as JSON on the manifest config."""

    model_config = ConfigDict(extra="ignore")

    on_field_drift: FieldDriftPolicy = FieldDriftPolicy.MANIFEST_WINS
    on_removal: ServiceRemovalPolicy = ServiceRemovalPolicy.DEACTIVATE
    on_alias_removal: MetadataRemovalPolicy = MetadataRemovalPolicy.REMOVE
    on_override_removal: MetadataRemovalPolicy = MetadataRemovalPolicy.REMOVE
    on_association_removal: MetadataRemovalPolicy = MetadataRemovalPolicy.REMOVE
    excluded_fields: List[str] = Field(
        default_factory=list,
        description="Service fields sync never compares or overwrites",
    )

    @field_validator("excluded_fields")
    @classmethod
    def validate_excluded_fields(cls, v: List[str]) -> List[str]:
        """Only syncable service fields can be excluded."""
        unknown = [f for f in v if f not in SYNCABLE_SERVICE_FIELDS]
        if unknown:
            raise ValueError(f"unknown fields: {', '.join(unknown)}")
        return v

    @classmethod
    def from_stored(cls, raw: Optional[Dict[str, Any]]) -> "ManifestSyncPolicy":
        """Build a policy from the stored JSON, filling defaults for missing keys."""
        return cls.model_validate(raw or {})


class TeamManifestConfigBase(BaseModel):
    """Base schema for a team's manifest configuration."""

    manifest_url: str = Field(..., description="URL the manifest is fetched from")
    is_enabled: bool = Field(True, description="Whether scheduled and manual syncs run")
    sync_policy: ManifestSyncPolicy = Field(default_factory=ManifestSyncPolicy)
    sync_interval_seconds: Optional[int] = Field(
        None, gt=0, description="Scheduled sync interval; falls back to the global default"
    )


class TeamManifestConfigCreate(TeamManifestConfigBase):
    """Schema for creating a manifest configuration."""

    pass


class TeamManifestConfigUpdate(BaseModel):
    """Schema for updating a manifest configuration."""

    manifest_url: Optional[str] = None
    is_enabled: Optional[bool] = None
    sync_policy: Optional[ManifestSyncPolicy] = None
    sync_interval_seconds: Optional[int] = Field(None, gt=0)


class TeamManifestConfig(TeamManifestConfigBase):
    """Complete manifest configuration schema."""

    id: UUID
    team_id: UUID
    last_sync_at: Optional[datetime] = None
    last_sync_status: Optional[str] = None
    last_sync_error: Optional[str] = None
    last_sync_summary: Optional[Dict[str, Any]] = None
    created_at: datetime
    modified_at: datetime

    @field_validator("sync_policy", mode="before")
    @classmethod
    def normalize_sync_policy(cls, v: Any) -> ManifestSyncPolicy:
        """Stored policies may be null or missing keys."""
        if isinstance(v, ManifestSyncPolicy):
            return v
        return ManifestSyncPolicy.from_stored(v)

    class Config:
        """Pydantic config."""

        from_attributes = True
