"""Dependency alias model."""

from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from depsera.models._base import Base


class DependencyAlias(Base):
    """Maps a reported dependency name to a canonical name.

    Aliases are globally unique. Manifest-created aliases are scoped to the owning
    team through ``manifest_team_id``.
    """

    __tablename__ = "dependency_aliases"

    alias: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    canonical_name: Mapped[str] = mapped_column(String(255), nullable=False)
    manifest_team_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"), nullable=True, index=True
    )
    manifest_managed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
