"""CRUD operations for drift flags."""

from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from depsera.core.datetime_utils import utc_now_naive
from depsera.core.shared_models import OPEN_DRIFT_STATUSES, DriftFlagStatus, DriftType
from depsera.db.unit_of_work import UnitOfWork
from depsera.models.drift_flag import DriftFlag
from depsera.schemas.drift_flag import DriftSummary


class CRUDDriftFlag:
    """CRUD operations for drift flags.

    A flag is "open" while pending or dismissed. There is at most one open flag per
    (service, drift type, field); upserts refresh it instead of adding another.
    """

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = DriftFlag

    async def get(self, db: AsyncSession, id: UUID) -> Optional[DriftFlag]:
        """Get a drift flag by ID."""
        result = await db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_open_by_team(self, db: AsyncSession, team_id: UUID) -> List[DriftFlag]:
        """Get a team's open drift flags, most recently detected first.

        Args:
            db: Database session
            team_id: Team ID

        Returns:
            List of pending and dismissed flags
        """
        result = await db.execute(
            select(self.model)
            .where(
                and_(
                    self.model.team_id == team_id,
                    self.model.status.in_(OPEN_DRIFT_STATUSES),
                )
            )
            .order_by(self.model.last_detected_at.desc())
        )
        return list(result.scalars().all())

    async def _get_open(
        self,
        db: AsyncSession,
        service_id: UUID,
        drift_type: DriftType,
        field_name: Optional[str],
    ) -> Optional[DriftFlag]:
        conditions = [
            self.model.service_id == service_id,
            self.model.drift_type == drift_type.value,
            self.model.status.in_(OPEN_DRIFT_STATUSES),
        ]
        if field_name is None:
            conditions.append(self.model.field_name.is_(None))
        else:
            conditions.append(self.model.field_name == field_name)
        result = await db.execute(select(self.model).where(and_(*conditions)))
        return result.scalars().first()

    async def upsert_field_drift(
        self,
        db: AsyncSession,
        *,
        team_id: UUID,
        service_id: UUID,
        field_name: str,
        manifest_value: str,
        current_value: str,
        sync_history_id: Optional[UUID],
        uow: Optional[UnitOfWork] = None,
    ) -> Tuple[DriftFlag, bool]:
        """Create or refresh the open drift flag for a service field.

        A dismissed flag stays dismissed while the manifest still declares the same
        value; a new manifest value re-opens it as pending.

        Args:
            db: Database session
            team_id: Team ID
            service_id: Drifted service
            field_name: Drifted field
            manifest_value: Normalised manifest value
            current_value: Normalised live value
            sync_history_id: Run that observed the drift
            uow: Optional unit of work for transaction control

        Returns:
            Tuple of (flag, created)
        """
        now = utc_now_naive()
        existing = await self._get_open(db, service_id, DriftType.FIELD_CHANGE, field_name)

        if existing is None:
            db_obj = self.model(
                team_id=team_id,
                service_id=service_id,
                drift_type=DriftType.FIELD_CHANGE.value,
                field_name=field_name,
                manifest_value=manifest_value,
                current_value=current_value,
                status=DriftFlagStatus.PENDING.value,
                first_detected_at=now,
                last_detected_at=now,
                sync_history_id=sync_history_id,
            )
            db.add(db_obj)
            created = True
        else:
            db_obj = existing
            if (
                existing.status == DriftFlagStatus.DISMISSED.value
                and existing.manifest_value != manifest_value
            ):
                db_obj.status = DriftFlagStatus.PENDING.value
            db_obj.manifest_value = manifest_value
            db_obj.current_value = current_value
            db_obj.last_detected_at = now
            db_obj.sync_history_id = sync_history_id
            created = False

        if uow:
            await uow.flush()
        else:
            await db.commit()
            await db.refresh(db_obj)

        return db_obj, created

    async def upsert_removal_drift(
        self,
        db: AsyncSession,
        *,
        team_id: UUID,
        service_id: UUID,
        sync_history_id: Optional[UUID],
        uow: Optional[UnitOfWork] = None,
    ) -> Tuple[DriftFlag, bool]:
        """Create or refresh the open removal flag for a service.

        Returns:
            Tuple of (flag, created)
        """
        now = utc_now_naive()
        existing = await self._get_open(db, service_id, DriftType.SERVICE_REMOVAL, None)

        if existing is None:
            db_obj = self.model(
                team_id=team_id,
                service_id=service_id,
                drift_type=DriftType.SERVICE_REMOVAL.value,
                status=DriftFlagStatus.PENDING.value,
                first_detected_at=now,
                last_detected_at=now,
                sync_history_id=sync_history_id,
            )
            db.add(db_obj)
            created = True
        else:
            db_obj = existing
            db_obj.last_detected_at = now
            db_obj.sync_history_id = sync_history_id
            created = False

        if uow:
            await uow.flush()
        else:
            await db.commit()
            await db.refresh(db_obj)

        return db_obj, created

    async def resolve(
        self,
        db: AsyncSession,
        *,
        id: UUID,
        status: DriftFlagStatus,
        user_id: Optional[UUID],
        uow: Optional[UnitOfWork] = None,
    ) -> Optional[DriftFlag]:
        """Manually move a flag to dismissed, accepted or resolved.

        Args:
            db: Database session
            id: Drift flag ID
            status: Target status
            user_id: User acting on the flag
            uow: Optional unit of work for transaction control

        Returns:
            Updated flag, or None if not found
        """
        db_obj = await self.get(db, id=id)
        if not db_obj:
            return None

        db_obj.status = status.value
        db_obj.resolved_by = user_id
        db_obj.resolved_at = None if status == DriftFlagStatus.DISMISSED else utc_now_naive()
        db.add(db_obj)

        if uow:
            await uow.flush()
        else:
            await db.commit()
            await db.refresh(db_obj)

        return db_obj

    async def resolve_many(
        self,
        db: AsyncSession,
        *,
        ids: Iterable[UUID],
        uow: Optional[UnitOfWork] = None,
    ) -> int:
        """Automatically resolve flags whose divergence is gone.

        Returns:
            Number of rows updated
        """
        ids = list(ids)
        if not ids:
            return 0
        result = await db.execute(
            update(self.model)
            .where(self.model.id.in_(ids))
            .values(
                status=DriftFlagStatus.RESOLVED.value,
                resolved_at=utc_now_naive(),
                resolved_by=None,
            )
        )

        if uow:
            await uow.flush()
        else:
            await db.commit()

        return result.rowcount

    async def resolve_all_for_service(
        self,
        db: AsyncSession,
        *,
        service_id: UUID,
        uow: Optional[UnitOfWork] = None,
    ) -> int:
        """Resolve every open flag on a service (used when it leaves the manifest).

        Returns:
            Number of rows updated
        """
        result = await db.execute(
            update(self.model)
            .where(
                and_(
                    self.model.service_id == service_id,
                    self.model.status.in_(OPEN_DRIFT_STATUSES),
                )
            )
            .values(
                status=DriftFlagStatus.RESOLVED.value,
                resolved_at=utc_now_naive(),
                resolved_by=None,
            )
        )

        if uow:
            await uow.flush()
        else:
            await db.commit()

        return result.rowcount

    async def get_summary(self, db: AsyncSession, team_id: UUID) -> DriftSummary:
        """Count a team's open flags by status."""
        result = await db.execute(
            select(self.model.status, func.count())
            .where(
                and_(
                    self.model.team_id == team_id,
                    self.model.status.in_(OPEN_DRIFT_STATUSES),
                )
            )
            .group_by(self.model.status)
        )
        counts = {status: count for status, count in result.all()}
        service_ids = await db.execute(
            select(self.model.service_id)
            .where(
                and_(
                    self.model.team_id == team_id,
                    self.model.status.in_(OPEN_DRIFT_STATUSES),
                )
            )
            .distinct()
        )
        return DriftSummary(
            pending_count=counts.get(DriftFlagStatus.PENDING.value, 0),
            dismissed_count=counts.get(DriftFlagStatus.DISMISSED.value, 0),
            service_ids=list(service_ids.scalars().all()),
        )


drift_flag = CRUDDriftFlag()
