"""Tests for the SQLite lock retry decorator."""

import pytest
from sqlalchemy.exc import OperationalError

from soulgate.infrastructure.persistence.retry import (
    DatabaseLockMetrics,
    is_lock_error,
    with_db_retry,
)


def _locked() -> OperationalError:
    return OperationalError("UPDATE", {}, Exception("database is locked"))


class TestIsLockError:
    def test_lock_and_busy_errors(self) -> None:
        assert is_lock_error(_locked())
        assert is_lock_error(OperationalError("x", {}, Exception("database is busy")))

    def test_other_errors(self) -> None:
        assert not is_lock_error(OperationalError("x", {}, Exception("no such table")))
        assert not is_lock_error(ValueError("locked"))


class TestWithDbRetry:
    async def test_retries_until_success(self) -> None:
        calls = 0

        @with_db_retry(max_attempts=3, initial_delay=0)
        async def flaky() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise _locked()
            return "ok"

        assert await flaky() == "ok"
        assert calls == 3
        stats = DatabaseLockMetrics.get_instance().get_stats()
        assert stats["lock_retries"] == 2
        assert stats["lock_successes"] == 1

    async def test_gives_up_after_max_attempts(self) -> None:
        @with_db_retry(max_attempts=2, initial_delay=0)
        async def always_locked() -> None:
            raise _locked()

        with pytest.raises(OperationalError):
            await always_locked()
        assert DatabaseLockMetrics.get_instance().lock_failures == 1

    async def test_non_lock_errors_fail_fast(self) -> None:
        calls = 0

        @with_db_retry(max_attempts=5, initial_delay=0)
        async def broken() -> None:
            nonlocal calls
            calls += 1
            raise OperationalError("x", {}, Exception("no such table: whitelist_entries"))

        with pytest.raises(OperationalError):
            await broken()
        assert calls == 1


class TestLockMetrics:
    async def test_stats_are_keyed_by_operation(self) -> None:
        attempts = 0

        @with_db_retry(max_attempts=2, initial_delay=0)
        async def _delete_cascade_tx() -> None:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise _locked()

        await _delete_cascade_tx()

        stats = DatabaseLockMetrics.get_instance().get_stats()
        assert stats["operations"]["delete_cascade"]["retries"] == 1
        assert stats["operations"]["delete_cascade"]["successes"] == 1

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError):
            with_db_retry(max_attempts=0)
