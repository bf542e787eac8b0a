"""Retry for SQLite "database is locked" errors, with per-operation lock stats."""

# Hey future me - SQLite has ONE writer. A background sync committing a cascade while a manual
# refresh reads the snapshot (or an admin runs sqlite3 on the file) gives "database is locked".
# That's temporary, so the storage retries the WHOLE transaction a few times before the cycle
# is reported as failed. Stats are per storage operation ("delete_cascade", "commit_snapshot")
# so GET /api/whitelist/status shows WHICH write keeps colliding.

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

_LOCK_MARKERS = ("database is locked", "database table is locked", "database is busy")


@dataclass
class OperationLockStats:
    """Lock counters for one storage operation."""

    calls: int = 0
    successes: int = 0
    retries: int = 0
    failures: int = 0
    waited_ms: float = 0.0


class DatabaseLockMetrics:
    """Process-wide lock statistics, keyed by storage operation name."""

    _instance: DatabaseLockMetrics | None = None

    def __init__(self) -> None:
        self.operations: dict[str, OperationLockStats] = {}
        self.last_lock_at: float | None = None

    @classmethod
    def get_instance(cls) -> DatabaseLockMetrics:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _stats(self, operation: str) -> OperationLockStats:
        return self.operations.setdefault(operation, OperationLockStats())

    def record_call(self, operation: str) -> None:
        self._stats(operation).calls += 1

    def record_success(self, operation: str) -> None:
        self._stats(operation).successes += 1

    def record_retry(self, operation: str, delay_seconds: float) -> None:
        stats = self._stats(operation)
        stats.retries += 1
        stats.waited_ms += delay_seconds * 1000
        self.last_lock_at = time.time()

    def record_failure(self, operation: str) -> None:
        self._stats(operation).failures += 1
        self.last_lock_at = time.time()

    @property
    def lock_retries(self) -> int:
        return sum(s.retries for s in self.operations.values())

    @property
    def lock_failures(self) -> int:
        return sum(s.failures for s in self.operations.values())

    def get_stats(self) -> dict[str, Any]:
        """Totals plus the per-operation breakdown."""
        calls = sum(s.calls for s in self.operations.values())
        return {
            "lock_calls": calls,
            "lock_successes": sum(s.successes for s in self.operations.values()),
            "lock_retries": self.lock_retries,
            "lock_failures": self.lock_failures,
            "total_wait_time_ms": round(sum(s.waited_ms for s in self.operations.values()), 2),
            "last_lock_event_timestamp": self.last_lock_at,
            "operations": {name: asdict(s) for name, s in sorted(self.operations.items())},
        }

    def reset(self) -> None:
        """Forget everything (tests)."""
        self.operations.clear()
        self.last_lock_at = None


def is_lock_error(exception: BaseException) -> bool:
    """Check if an exception is a transient SQLite lock/busy error."""
    if not isinstance(exception, OperationalError):
        return False
    message = str(exception.orig if exception.orig is not None else exception).lower()
    return any(marker in message for marker in _LOCK_MARKERS)


def _operation_name(func: Callable[..., Any]) -> str:
    # _commit_snapshot_tx -> commit_snapshot
    name = func.__name__.strip("_")
    return name[: -len("_tx")] if name.endswith("_tx") else name


def with_db_retry(
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 5.0,
    backoff_factor: float = 2.0,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry a transaction-opening coroutine on SQLite lock errors.

    The decorated coroutine must open its own session_scope() so every attempt
    starts from a fresh transaction. Any other error propagates immediately.

    Args:
        max_attempts: Attempts including the first one
        initial_delay: Seconds before the first retry
        max_delay: Cap for the delay between attempts
        backoff_factor: Delay multiplier per retry
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        operation = _operation_name(func)

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            metrics = DatabaseLockMetrics.get_instance()
            metrics.record_call(operation)

            for attempt in range(1, max_attempts + 1):
                try:
                    result = await func(*args, **kwargs)
                except OperationalError as e:
                    if not is_lock_error(e):
                        raise
                    if attempt == max_attempts:
                        metrics.record_failure(operation)
                        logger.error(
                            "storage.lock_exhausted",
                            extra={"operation": operation, "attempts": attempt},
                        )
                        raise
                    delay = min(initial_delay * backoff_factor ** (attempt - 1), max_delay)
                    metrics.record_retry(operation, delay)
                    logger.warning(
                        "storage.lock_retry",
                        extra={
                            "operation": operation,
                            "attempt": attempt,
                            "max_attempts": max_attempts,
                            "delay_seconds": delay,
                        },
                    )
                    await asyncio.sleep(delay)
                    continue
                metrics.record_success(operation)
                return result

            raise AssertionError("unreachable: loop always returns or raises")

        return wrapper

    return decorator
