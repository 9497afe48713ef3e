"""Depsera manifest sync application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST

from depsera.api.v1.api import api_router
from depsera.core.logging import logger
from depsera.platform.manifest import ManifestSyncScheduler, SyncCoordinator
from depsera.platform.manifest.metrics import get_prometheus_metrics


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the sync scheduler on startup and drain it on shutdown."""
    coordinator = SyncCoordinator()
    scheduler = ManifestSyncScheduler(coordinator)
    app.state.manifest_coordinator = coordinator
    app.state.manifest_scheduler = scheduler

    scheduler.start()
    logger.info("Depsera manifest sync started")
    try:
        yield
    finally:
        await scheduler.stop()
        logger.info("Depsera manifest sync stopped")


app = FastAPI(title="Depsera", lifespan=lifespan)
app.include_router(api_router)


@app.get("/metrics")
async def metrics() -> Response:
    """Expose manifest sync metrics in Prometheus text format."""
    return Response(get_prometheus_metrics(), media_type=CONTENT_TYPE_LATEST)
