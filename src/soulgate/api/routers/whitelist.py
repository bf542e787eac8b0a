"""Whitelist sync endpoints: status, manual refresh, artist listing and SSE progress."""

import json
import logging
from collections.abc import AsyncGenerator
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from soulgate.api.dependencies import (
    get_optional_sync_worker,
    get_sync_progress,
    get_sync_worker,
    get_whitelist_storage,
)
from soulgate.application.services.sync_progress import SyncProgressPublisher
from soulgate.application.workers.whitelist_sync_worker import WhitelistSyncWorker
from soulgate.domain.exceptions import StorageError
from soulgate.domain.ports import IWhitelistStorage
from soulgate.infrastructure.persistence.retry import DatabaseLockMetrics

logger = logging.getLogger(__name__)

router = APIRouter()


class SnapshotSummary(BaseModel):
    """Persisted snapshot without its entries."""

    content_hash: str
    fetched_at: datetime
    artist_count: int


class WhitelistStatusResponse(BaseModel):
    """Current sync state plus what is persisted."""

    state: dict[str, Any] = Field(description="Current SyncState")
    snapshot: SnapshotSummary | None = Field(
        default=None, description="None before the first successful sync"
    )
    worker: dict[str, Any] | None = Field(
        default=None, description="Sync worker stats, None when sync is not configured"
    )
    db_lock_metrics: dict[str, Any] = Field(default_factory=dict)


class WhitelistArtistResponse(BaseModel):
    id: str
    name: str


class WhitelistArtistsResponse(BaseModel):
    artists: list[WhitelistArtistResponse]
    total: int


def _storage_unavailable(e: StorageError) -> HTTPException:
    logger.error("whitelist.api.storage_failed", extra={"error": e.message})
    return HTTPException(status_code=503, detail=f"Storage unavailable: {e.message}")


@router.get("/status", response_model=WhitelistStatusResponse)
async def get_whitelist_status(
    progress: SyncProgressPublisher = Depends(get_sync_progress),
    storage: IWhitelistStorage = Depends(get_whitelist_storage),
    worker: WhitelistSyncWorker | None = Depends(get_optional_sync_worker),
) -> WhitelistStatusResponse:
    """Get current sync state and a summary of the persisted snapshot."""
    try:
        snapshot = await storage.get_snapshot()
    except StorageError as e:
        raise _storage_unavailable(e) from e

    return WhitelistStatusResponse(
        state=progress.current.to_dict(),
        snapshot=SnapshotSummary(
            content_hash=snapshot.content_hash,
            fetched_at=snapshot.fetched_at,
            artist_count=len(snapshot.entries),
        )
        if snapshot is not None
        else None,
        worker=worker.get_status() if worker is not None else None,
        db_lock_metrics=DatabaseLockMetrics.get_instance().get_stats(),
    )


# Hey future me, this never answers 409! If a sync is already running (startup, background or
# another click) we just join it and return its outcome. A failed sync is still a 200 - the
# body's "status" says "failed" and "reason" tells why.
@router.post("/sync")
async def trigger_whitelist_sync(
    worker: WhitelistSyncWorker = Depends(get_sync_worker),
) -> dict[str, Any]:
    """Run a manual whitelist sync and return its terminal state."""
    state = await worker.request_sync()
    return state.to_dict()


@router.get("/artists", response_model=WhitelistArtistsResponse)
async def list_whitelisted_artists(
    storage: IWhitelistStorage = Depends(get_whitelist_storage),
) -> WhitelistArtistsResponse:
    """List the artists of the persisted whitelist snapshot, sorted by name."""
    try:
        entries = await storage.list_entries()
    except StorageError as e:
        raise _storage_unavailable(e) from e

    return WhitelistArtistsResponse(
        artists=[
            WhitelistArtistResponse(id=entry.artist_id, name=entry.display_name)
            for entry in entries
        ],
        total=len(entries),
    )


@router.get("/events")
async def stream_sync_events(
    request: Request,
    progress: SyncProgressPublisher = Depends(get_sync_progress),
) -> EventSourceResponse:
    """Server-Sent Events stream of sync state transitions.

    The current state is sent first, then every transition as it happens.
    Event name is ``sync_state``, data is the state as JSON.
    """

    async def event_generator() -> AsyncGenerator[dict[str, str], None]:
        # The subscription is removed when the client disconnects and sse-starlette
        # cancels this generator.
        async with progress.subscribe() as subscription:
            async for state in subscription:
                if await request.is_disconnected():
                    break
                yield {"event": "sync_state", "data": json.dumps(state.to_dict())}

    return EventSourceResponse(event_generator())
