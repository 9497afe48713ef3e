"""API routes for the v1 API."""

from fastapi import APIRouter

from depsera.api.v1.endpoints import manifest

api_router = APIRouter()
api_router.include_router(manifest.router, prefix="/teams", tags=["manifest"])
