# Endpoints:
# - /health        -> liveness (process is up)
# - /health/ready  -> readiness (database reachable, sync worker running if configured)
#
# Readiness deliberately does NOT depend on the last sync outcome: a failed startup sync is a
# soft failure and the app keeps serving the last persisted whitelist.
"""Health check endpoints for Docker/Kubernetes probes."""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from soulgate import __version__

logger = logging.getLogger(__name__)

router = APIRouter()


class LivenessStatus(BaseModel):
    """Simple liveness probe response."""

    status: str = Field(description="alive")
    timestamp: str = Field(description="ISO timestamp")
    version: str = Field(default=__version__)


class ReadinessStatus(BaseModel):
    """Readiness probe response."""

    status: str = Field(description="ready or not_ready")
    timestamp: str = Field(description="ISO timestamp")
    database: bool = Field(description="Database connection OK")
    sync_worker: bool = Field(description="Background sync running (or not configured)")
    sync_state: str | None = Field(default=None, description="Current sync status")


@router.get("", response_model=LivenessStatus)
async def liveness_probe() -> LivenessStatus:
    """Liveness probe: the process answers requests."""
    return LivenessStatus(status="alive", timestamp=datetime.now(UTC).isoformat())


@router.get("/ready", response_model=ReadinessStatus)
async def readiness_probe(request: Request) -> JSONResponse:
    """Readiness probe: database reachable and sync worker running."""
    database_ok = False
    db = getattr(request.app.state, "db", None)
    if db is not None:
        try:
            await db.ping()
            database_ok = True
        except SQLAlchemyError as e:
            logger.warning("health.database_unreachable", extra={"error": str(e)})

    worker = getattr(request.app.state, "sync_worker", None)
    worker_ok = worker is None or worker.is_running

    progress = getattr(request.app.state, "sync_progress", None)
    ready = database_ok and worker_ok
    body = ReadinessStatus(
        status="ready" if ready else "not_ready",
        timestamp=datetime.now(UTC).isoformat(),
        database=database_ok,
        sync_worker=worker_ok,
        sync_state=progress.current.status if progress is not None else None,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(),
    )
