"""Dependency injection for API endpoints."""

from typing import cast

from fastapi import HTTPException, Request

from soulgate.application.services.sync_progress import SyncProgressPublisher
from soulgate.application.workers.whitelist_sync_worker import WhitelistSyncWorker
from soulgate.domain.ports import IWhitelistStorage


# Hey future me, everything here comes from app.state, which lifespan() fills at startup. A
# missing attribute means startup didn't get that far, so we answer 503 instead of a 500.
def get_sync_progress(request: Request) -> SyncProgressPublisher:
    """Get the sync progress publisher from app state."""
    if not hasattr(request.app.state, "sync_progress"):
        raise HTTPException(status_code=503, detail="Sync progress not initialized")
    return cast(SyncProgressPublisher, request.app.state.sync_progress)


def get_whitelist_storage(request: Request) -> IWhitelistStorage:
    """Get the whitelist storage from app state."""
    if not hasattr(request.app.state, "whitelist_storage"):
        raise HTTPException(status_code=503, detail="Whitelist storage not initialized")
    return cast(IWhitelistStorage, request.app.state.whitelist_storage)


# The worker is None when no WHITELIST__URL is configured.
def get_optional_sync_worker(request: Request) -> WhitelistSyncWorker | None:
    return cast(
        WhitelistSyncWorker | None, getattr(request.app.state, "sync_worker", None)
    )


def get_sync_worker(request: Request) -> WhitelistSyncWorker:
    """Get the whitelist sync worker from app state.

    Raises:
        HTTPException: 503 if no whitelist source is configured
    """
    worker = get_optional_sync_worker(request)
    if worker is None:
        raise HTTPException(
            status_code=503,
            detail="Whitelist sync is not configured (set WHITELIST__URL)",
        )
    return worker
