# Hey future me - this worker is THE owner of the whitelist sync!
#
# Three things trigger a sync cycle:
# 1. App startup (sync_blocking) - gated by a hard timeout, failure is SOFT
# 2. The background loop (start_background_loop) - every interval, errors only logged
# 3. A manual refresh from the API (request_sync)
#
# All three end up in run_cycle(). There is never more than one cycle at a time: if one is in
# flight, late callers simply await THAT cycle (asyncio.shield, so one impatient caller can't
# cancel it for everybody) and get the same terminal state.
#
# A cycle: FETCHING -> (hash unchanged: done, zero writes) -> DIFFING -> CLEANING (only when
# artists were removed) -> commit snapshot -> SUCCEEDED. Any failure -> FAILED and the database
# is exactly as before, because purge + snapshot commit happen in ONE transaction.
#
# The "point of no return" is the moment we start writing. Before it, a startup timeout cancels
# the cycle cleanly. After it, we let the transaction finish (or roll back) on its own -
# cancelling mid-commit buys nothing.
"""Background worker that keeps the catalog in line with the remote whitelist."""

import asyncio
import contextlib
import logging
import time
from datetime import datetime
from typing import Any

from soulgate.application.services.cascade_cleanup_service import CascadeCleanupService
from soulgate.application.services.sync_progress import SyncProgressPublisher
from soulgate.application.services.whitelist_diff import diff
from soulgate.config.settings import WhitelistSettings
from soulgate.domain.entities import (
    RemotePayload,
    SyncFailed,
    SyncPhase,
    SyncRunning,
    SyncState,
    SyncSucceeded,
    WhitelistSnapshot,
    utc_now,
)
from soulgate.domain.exceptions import (
    FetchError,
    StorageError,
    SyncError,
    SyncErrorKind,
)
from soulgate.domain.ports import IWhitelistFetcher, IWhitelistStorage
from soulgate.infrastructure.observability import (
    log_operation,
    log_worker_health,
    set_correlation_id,
)

logger = logging.getLogger(__name__)

WORKER_NAME = "whitelist_sync"

_PHASE_ERROR_KIND = {
    SyncPhase.FETCHING: SyncErrorKind.FETCH_FAILED,
    SyncPhase.DIFFING: SyncErrorKind.CLEANUP_FAILED,
    SyncPhase.CLEANING: SyncErrorKind.CLEANUP_FAILED,
}


class WhitelistSyncWorker:
    """Coordinates whitelist sync cycles with single-flight semantics."""

    def __init__(
        self,
        fetcher: IWhitelistFetcher,
        storage: IWhitelistStorage,
        publisher: SyncProgressPublisher,
        settings: WhitelistSettings,
        cleanup: CascadeCleanupService | None = None,
    ) -> None:
        """Initialize the sync worker.

        Args:
            fetcher: Remote whitelist source
            storage: Snapshot and catalog storage
            publisher: Receives every state transition
            settings: Intervals, timeouts and fetch retry policy
            cleanup: Cascade service (built from storage if omitted)
        """
        self._fetcher = fetcher
        self._storage = storage
        self._publisher = publisher
        self.settings = settings
        self._cleanup = cleanup or CascadeCleanupService(storage)

        self.interval_seconds = settings.background_interval_seconds

        # Single-flight bookkeeping
        self._lock = asyncio.Lock()
        self._inflight: asyncio.Task[SyncState] | None = None
        self._phase = SyncPhase.FETCHING
        self._past_point_of_no_return = False
        self._cancel_for_timeout = False

        # Background loop
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._start_time = time.time()

        # Stats
        self._cycles_completed = 0
        self._errors_total = 0
        self._last_trigger: str | None = None

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    async def run_cycle(self, trigger: str = "manual") -> SyncState:
        """Run a sync cycle, or join the one already in flight.

        Never raises for fetch or storage problems; the outcome is the returned
        terminal state (SyncSucceeded or SyncFailed), which is also published.
        """
        task = await self._ensure_cycle(trigger)
        return await asyncio.shield(task)

    async def request_sync(self) -> SyncState:
        """Manual, user-initiated refresh."""
        return await self.run_cycle("manual")

    async def sync_blocking(self, timeout: float | None = None) -> SyncState:
        """Run the startup sync within a hard time limit.

        If the limit hits before the first write, the cycle is cancelled and
        ends in SyncFailed(TIMED_OUT). If writes already started, the cycle is
        left to commit or roll back on its own: observers keep seeing
        SyncRunning until it settles, then its real terminal state. A cycle
        that settled right as the limit hit is reported by its own outcome.

        Args:
            timeout: Seconds to wait, defaults to settings.startup_timeout_seconds

        Returns:
            The terminal SyncSucceeded state

        Raises:
            SyncError: FETCH_FAILED, CLEANUP_FAILED or TIMED_OUT. Startup treats
                this as a soft failure and keeps serving the last snapshot.
        """
        limit = timeout if timeout is not None else self.settings.startup_timeout_seconds
        task = await self._ensure_cycle("startup")
        try:
            state = await asyncio.wait_for(asyncio.shield(task), timeout=limit)
        except TimeoutError:
            if task.done():
                state = task.result()
            elif self._past_point_of_no_return:
                # Writes already started; the cycle publishes its own terminal state.
                logger.warning(
                    "whitelist_sync.startup.timed_out",
                    extra={"timeout_seconds": limit, "continues_in_background": True},
                )
                raise SyncError(
                    SyncErrorKind.TIMED_OUT,
                    f"Startup sync exceeded {limit}s; finishing in background",
                ) from None
            else:
                self._cancel_for_timeout = True
                task.cancel()
                state = await task
                logger.warning(
                    "whitelist_sync.startup.timed_out",
                    extra={"timeout_seconds": limit, "continues_in_background": False},
                )

        if isinstance(state, SyncFailed):
            raise SyncError(state.error, state.reason)
        return state

    async def _ensure_cycle(self, trigger: str) -> "asyncio.Task[SyncState]":
        async with self._lock:
            if self._inflight is not None and not self._inflight.done():
                logger.info(
                    "whitelist_sync.cycle.coalesced",
                    extra={"trigger": trigger, "inflight_trigger": self._last_trigger},
                )
                return self._inflight

            self._last_trigger = trigger
            task = asyncio.create_task(
                self._execute_cycle(trigger), name=f"whitelist-sync-{trigger}"
            )
            self._inflight = task
            return task

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    async def start_background_loop(self, interval: float | None = None) -> None:
        """Start the recurring sync.

        Creates a background task that runs the sync loop.
        Safe to call multiple times (idempotent).
        """
        if self._running:
            logger.warning("whitelist_sync.already_running")
            return

        if interval is not None:
            self.interval_seconds = interval
        self._running = True
        self._start_time = time.time()
        self._task = asyncio.create_task(self._run_loop(), name="whitelist-sync-loop")
        logger.info(
            "worker.started",
            extra={"worker": WORKER_NAME, "interval_seconds": self.interval_seconds},
        )

    async def stop(self) -> None:
        """Stop the background loop and settle any in-flight cycle.

        Safe to call multiple times (idempotent).
        """
        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        inflight = self._inflight
        if inflight is not None and not inflight.done():
            if not self._past_point_of_no_return:
                inflight.cancel()
            # Past the point of no return this waits for commit or rollback.
            with contextlib.suppress(asyncio.CancelledError):
                await inflight

        logger.info(
            "worker.stopped",
            extra={
                "worker": WORKER_NAME,
                "cycles_completed": self._cycles_completed,
                "errors_total": self._errors_total,
                "uptime_seconds": int(time.time() - self._start_time),
            },
        )

    async def _run_loop(self) -> None:
        """Sleep for the interval, run a cycle, repeat until stop()."""
        logger.info("whitelist_sync.main_loop.entered")
        loop_cycles = 0

        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                # Worker is being stopped
                break

            try:
                await self.run_cycle("background")
            except asyncio.CancelledError:
                break
            except Exception as e:
                # Do not crash the loop on errors - log and continue
                self._errors_total += 1
                logger.error(
                    "whitelist_sync.loop.failed",
                    extra={"error_type": type(e).__name__},
                    exc_info=True,
                )

            loop_cycles += 1
            if loop_cycles % self.settings.health_log_every_cycles == 0:
                log_worker_health(
                    logger,
                    WORKER_NAME,
                    self._cycles_completed,
                    self._errors_total,
                    time.time() - self._start_time,
                    extra_stats={"state": self._publisher.current.status},
                )

    # -------------------------------------------------------------------------
    # The cycle
    # -------------------------------------------------------------------------

    async def _execute_cycle(self, trigger: str) -> SyncState:
        set_correlation_id()
        self._past_point_of_no_return = False
        self._cancel_for_timeout = False
        started_at = utc_now()

        state: SyncState
        try:
            async with log_operation(
                logger, "whitelist_sync.cycle", trigger=trigger
            ) as outcome:
                state = await self._cycle(started_at)
                outcome["status"] = state.status
        except asyncio.CancelledError:
            if not self._cancel_for_timeout:
                self._fail(
                    _PHASE_ERROR_KIND[self._phase], "Sync cancelled during shutdown"
                )
                raise
            self._cancel_for_timeout = False
            current = asyncio.current_task()
            if current is not None:
                current.uncancel()
            state = self._fail(
                SyncErrorKind.TIMED_OUT, "Sync timed out before any changes were written"
            )
        except Exception as e:
            # log_operation already logged the traceback
            state = self._fail(
                _PHASE_ERROR_KIND[self._phase],
                f"Unexpected error during {self._phase.value}: {e}",
            )

        self._cycles_completed += 1
        if isinstance(state, SyncFailed):
            self._errors_total += 1
        return state

    def _transition(self, phase: SyncPhase, started_at: datetime) -> None:
        self._phase = phase
        self._publisher.publish(SyncRunning(phase=phase, started_at=started_at))

    def _fail(self, kind: SyncErrorKind, reason: str) -> SyncFailed:
        state = SyncFailed(at=utc_now(), reason=reason, error=kind)
        self._publisher.publish(state)
        logger.warning(
            "whitelist_sync.cycle.failed_state",
            extra={"error": kind.value, "reason": reason, "phase": self._phase.value},
        )
        return state

    async def _cycle(self, started_at: datetime) -> SyncState:
        self._transition(SyncPhase.FETCHING, started_at)
        try:
            payload = await self._fetch_with_retry()
        except FetchError as e:
            return self._fail(
                SyncErrorKind.FETCH_FAILED, f"Fetch failed ({e.kind.value}): {e.message}"
            )

        try:
            previous = await self._storage.get_snapshot()
        except StorageError as e:
            return self._fail(SyncErrorKind.CLEANUP_FAILED, f"Storage read failed: {e.message}")

        if previous is not None and previous.content_hash == payload.content_hash:
            logger.info(
                "whitelist_sync.unchanged", extra={"content_hash": payload.content_hash}
            )
            return self._succeed(0)

        self._transition(SyncPhase.DIFFING, started_at)
        result = diff(previous, payload)
        logger.info(
            "whitelist_sync.diffed",
            extra={
                "added": len(result.added),
                "removed": len(result.removed),
                "first_sync": previous is None,
            },
        )

        try:
            await self._apply(payload, result.removed, started_at)
        except StorageError as e:
            return self._fail(
                SyncErrorKind.CLEANUP_FAILED,
                f"Storage update failed ({e.kind.value}): {e.message}",
            )
        return self._succeed(result.changed_count)

    async def _apply(
        self, payload: RemotePayload, removed: frozenset[str], started_at: datetime
    ) -> None:
        snapshot = WhitelistSnapshot.from_payload(payload)
        if not removed:
            self._past_point_of_no_return = True
            await self._storage.commit_snapshot(snapshot)
            return

        self._transition(SyncPhase.CLEANING, started_at)
        plan = await self._cleanup.plan(removed, whitelisted=payload.artist_ids)
        self._past_point_of_no_return = True
        report = await self._cleanup.apply(plan, snapshot=snapshot)
        logger.info(
            "whitelist_sync.cleaned",
            extra={**report.to_dict(), "total_deleted": report.total_deleted},
        )

    def _succeed(self, changed_count: int) -> SyncSucceeded:
        state = SyncSucceeded(at=utc_now(), changed_count=changed_count)
        self._publisher.publish(state)
        return state

    # Yo, retries live HERE and not in the client. Only NETWORK/TIMEOUT are retried; a MALFORMED
    # document will still be malformed in two seconds.
    async def _fetch_with_retry(self) -> RemotePayload:
        attempts = self.settings.fetch_retries + 1
        delay = self.settings.retry_initial_delay_seconds
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._fetcher.fetch()
            except FetchError as e:
                if not e.retryable or attempt >= attempts:
                    raise
                logger.warning(
                    "whitelist_sync.fetch.retry",
                    extra={
                        "attempt": attempt,
                        "max_attempts": attempts,
                        "delay_seconds": delay,
                        "error": e.kind.value,
                    },
                )
                await asyncio.sleep(delay)
                delay *= 2

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        """Check if the background loop is running."""
        return self._running

    @property
    def cycle_in_progress(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def get_status(self) -> dict[str, Any]:
        """Get current worker status and stats for monitoring."""
        return {
            "running": self._running,
            "interval_seconds": self.interval_seconds,
            "cycle_in_progress": self.cycle_in_progress,
            "cycles_completed": self._cycles_completed,
            "errors_total": self._errors_total,
            "last_trigger": self._last_trigger,
            "state": self._publisher.current.to_dict(),
        }
