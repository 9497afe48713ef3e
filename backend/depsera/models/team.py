"""Team model."""

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from depsera.models._base import Base

if TYPE_CHECKING:
    from depsera.models.manifest_config import TeamManifestConfig
    from depsera.models.service import Service


class Team(Base):
    """A team owning services.

    Teams are managed by the team CRUD layer; the manifest engine only reads them.
    ``key`` namespaces cross-team association references (``<team_key>/<manifest_key>``).
    """

    __tablename__ = "teams"

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    key: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, unique=True)

    services: Mapped[List["Service"]] = relationship(
        "Service", back_populates="team", lazy="noload"
    )
    manifest_config: Mapped[Optional["TeamManifestConfig"]] = relationship(
        "TeamManifestConfig", back_populates="team", lazy="noload", uselist=False
    )
