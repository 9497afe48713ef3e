"""Manifest sync API endpoints."""

import math
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from depsera import crud, schemas
from depsera.api import deps
from depsera.core.exceptions import ManualSyncCooldownException, NotFoundException
from depsera.core.logging import logger
from depsera.crud.crud_manifest_sync_history import CRUDManifestSyncHistory
from depsera.db.session import get_db
from depsera.platform.manifest import metrics
from depsera.platform.manifest.coordinator import SyncCoordinator

router = APIRouter()


@router.post("/{team_id}/manifest/sync", response_model=schemas.ManifestSyncResult)
async def sync_manifest(
    *,
    team_id: UUID,
    coordinator: SyncCoordinator = Depends(deps.get_coordinator),
    user_id: Optional[UUID] = Depends(deps.get_user_id),
) -> schemas.ManifestSyncResult:
    """Run a manifest sync for the team and return its result.

    Returns 409 while another sync for the team is running or when sync is disabled,
    and 429 while the manual trigger cooldown is active.
    """
    allowed, retry_after = coordinator.can_manual_sync(team_id)
    if not allowed:
        metrics.sync_rejections_total.labels(reason="cooldown").inc()
        e = ManualSyncCooldownException(retry_after)
        raise HTTPException(
            status_code=429,
            detail=e.message,
            headers={"Retry-After": str(math.ceil(retry_after))},
        )

    try:
        outcome = await coordinator.run_sync(team_id, triggered_by=user_id)
    except NotFoundException as e:
        raise HTTPException(status_code=404, detail=e.message) from e

    if not outcome.accepted:
        logger.info(f"Manual sync for team {team_id} rejected: {outcome.outcome.value}")
        raise HTTPException(status_code=409, detail=outcome.message)
    return outcome.result


@router.get("/{team_id}/manifest/history", response_model=schemas.ManifestSyncHistoryPage)
async def list_sync_history(
    *,
    team_id: UUID,
    limit: int = Query(
        CRUDManifestSyncHistory.DEFAULT_LIMIT, ge=1, le=CRUDManifestSyncHistory.MAX_LIMIT
    ),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> schemas.ManifestSyncHistoryPage:
    """Get a page of the team's sync history, newest first."""
    entries, total = await crud.manifest_sync_history.get_by_team(
        db, team_id, limit=limit, offset=offset
    )
    return schemas.ManifestSyncHistoryPage(
        history=[schemas.ManifestSyncHistory.model_validate(e) for e in entries],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{team_id}/drifts", response_model=List[schemas.DriftFlag])
async def list_drift_flags(
    *,
    team_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> List[schemas.DriftFlag]:
    """Get the team's open (pending or dismissed) drift flags."""
    flags = await crud.drift_flag.get_open_by_team(db, team_id)
    return [schemas.DriftFlag.model_validate(f) for f in flags]


@router.get("/{team_id}/drifts/summary", response_model=schemas.DriftSummary)
async def get_drift_summary(
    *,
    team_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> schemas.DriftSummary:
    """Get open drift counts for the team."""
    return await crud.drift_flag.get_summary(db, team_id)


@router.put("/{team_id}/drifts/{flag_id}/resolve", response_model=schemas.DriftFlag)
async def resolve_drift_flag(
    *,
    team_id: UUID,
    flag_id: UUID,
    request: schemas.DriftFlagResolve,
    db: AsyncSession = Depends(get_db),
    user_id: Optional[UUID] = Depends(deps.get_user_id),
) -> schemas.DriftFlag:
    """Dismiss, accept or resolve a drift flag."""
    flag = await crud.drift_flag.get(db, id=flag_id)
    if flag is None or flag.team_id != team_id:
        raise HTTPException(status_code=404, detail="Drift flag not found")

    flag = await crud.drift_flag.resolve(db, id=flag_id, status=request.status, user_id=user_id)
    return schemas.DriftFlag.model_validate(flag)
