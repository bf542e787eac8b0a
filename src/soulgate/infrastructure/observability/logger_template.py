"""Shared logging helpers for timed operations and worker health.

USAGE:
    async with log_operation(logger, "whitelist.cascade.apply", candidates=4) as outcome:
        report = await storage.delete_cascade(plan)
        outcome.update(report.to_dict())

    log_worker_health(logger, "whitelist_sync", cycles_completed=10, errors_total=2,
                      uptime_seconds=3600)
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


# Yo, this logs {operation}.started / .completed / .failed / .cancelled with duration_ms. The
# yielded dict is merged into the .completed record, so callers can attach results (deleted
# counts, final sync status) without a second log line. Errors and cancellation are RE-RAISED;
# the caller decides what they mean.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Log start and end of an operation with its duration.

    Args:
        logger: Logger to write to
        operation: Event prefix, e.g. "whitelist_sync.cycle"
        **context: Fields added to every record of this operation

    Yields:
        Dict whose entries are added to the completion record
    """
    outcome: dict[str, Any] = {}
    start = time.monotonic()
    logger.info(f"{operation}.started", extra=context)
    try:
        yield outcome
    except asyncio.CancelledError:
        logger.warning(
            f"{operation}.cancelled",
            extra={**context, "duration_ms": _elapsed_ms(start)},
        )
        raise
    except Exception as e:
        logger.error(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": _elapsed_ms(start),
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise
    logger.info(
        f"{operation}.completed",
        extra={**context, **outcome, "duration_ms": _elapsed_ms(start)},
    )


def log_worker_health(
    logger: logging.Logger,
    worker_name: str,
    cycles_completed: int,
    errors_total: int,
    uptime_seconds: float,
    extra_stats: dict[str, Any] | None = None,
) -> None:
    """Emit the periodic ``worker.health`` record.

    Args:
        logger: Logger to write to
        worker_name: Worker identifier, e.g. "whitelist_sync"
        cycles_completed: Cycles finished since start (failed ones included)
        errors_total: Cycles that ended in SyncFailed
        uptime_seconds: Seconds since the worker started
        extra_stats: Additional fields, e.g. the current sync state
    """
    logger.info(
        "worker.health",
        extra={
            "worker": worker_name,
            "cycles_completed": cycles_completed,
            "errors_total": errors_total,
            "error_rate": round(errors_total / cycles_completed, 3) if cycles_completed else 0.0,
            "uptime_seconds": int(uptime_seconds),
            **(extra_stats or {}),
        },
    )
