"""Dependencies that are used in the API endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import Header, HTTPException, Request

from depsera.platform.manifest.coordinator import SyncCoordinator


def get_coordinator(request: Request) -> SyncCoordinator:
    """Get the application's sync coordinator."""
    coordinator = getattr(request.app.state, "manifest_coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Manifest sync is not available")
    return coordinator


async def get_user_id(x_user_id: Optional[UUID] = Header(None)) -> Optional[UUID]:
    """Identity of the acting user.

    Authentication happens upstream; the authenticated user ID is forwarded in the
    ``X-User-Id`` header.
    """
    return x_user_id
