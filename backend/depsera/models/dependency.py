"""Dependency model."""

from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from depsera.models._base import Base

if TYPE_CHECKING:
    from depsera.models.dependency_association import DependencyAssociation
    from depsera.models.service import Service


class Dependency(Base):
    """A dependency reported by a service's health endpoint.

    Rows are discovered by health polling. Manifest associations can only attach to
    dependencies that already exist.
    """

    __tablename__ = "dependencies"

    service_id: Mapped[UUID] = mapped_column(
        ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    canonical_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    service: Mapped["Service"] = relationship(
        "Service", back_populates="dependencies", lazy="noload"
    )
    associations: Mapped[List["DependencyAssociation"]] = relationship(
        "DependencyAssociation", back_populates="dependency", lazy="noload", passive_deletes=True
    )

    __table_args__ = (UniqueConstraint("service_id", "name", name="uq_dependency_service_name"),)
