"""Dependency association model."""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from depsera.core.shared_models import AssociationType
from depsera.models._base import Base

if TYPE_CHECKING:
    from depsera.models.dependency import Dependency
    from depsera.models.service import Service


class DependencyAssociation(Base):
    """Links a dependency to the service it points at."""

    __tablename__ = "dependency_associations"

    dependency_id: Mapped[UUID] = mapped_column(
        ForeignKey("dependencies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    linked_service_id: Mapped[UUID] = mapped_column(
        ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True
    )
    association_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default=AssociationType.OTHER.value
    )
    manifest_managed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    dependency: Mapped["Dependency"] = relationship(
        "Dependency", back_populates="associations", lazy="noload"
    )
    linked_service: Mapped["Service"] = relationship("Service", lazy="noload")

    __table_args__ = (
        UniqueConstraint(
            "dependency_id", "linked_service_id", name="uq_association_dependency_linked"
        ),
    )
