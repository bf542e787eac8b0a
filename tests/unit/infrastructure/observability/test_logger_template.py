"""Tests for log_operation and log_worker_health."""

import asyncio
import logging

import pytest

from soulgate.infrastructure.observability import log_operation, log_worker_health

logger = logging.getLogger("soulgate.tests.logger_template")


class TestLogOperation:
    async def test_logs_started_and_completed(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger=logger.name)

        async with log_operation(logger, "whitelist_sync.cycle", trigger="manual"):
            pass

        messages = [r.getMessage() for r in caplog.records]
        assert messages == ["whitelist_sync.cycle.started", "whitelist_sync.cycle.completed"]
        assert caplog.records[1].trigger == "manual"  # type: ignore[attr-defined]
        assert caplog.records[1].duration_ms >= 0  # type: ignore[attr-defined]

    async def test_logs_failure_and_reraises(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger=logger.name)

        with pytest.raises(ValueError):
            async with log_operation(logger, "whitelist.cascade.apply"):
                raise ValueError("boom")

        failed = caplog.records[-1]
        assert failed.getMessage() == "whitelist.cascade.apply.failed"
        assert failed.levelno == logging.ERROR
        assert failed.error_type == "ValueError"  # type: ignore[attr-defined]
        assert failed.exc_info is not None

    async def test_outcome_is_added_to_completion(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger=logger.name)

        async with log_operation(logger, "whitelist.cascade.apply") as outcome:
            outcome["deleted_songs"] = 3

        assert caplog.records[-1].deleted_songs == 3  # type: ignore[attr-defined]

    async def test_cancellation_is_logged_and_propagates(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.INFO, logger=logger.name)

        with pytest.raises(asyncio.CancelledError):
            async with log_operation(logger, "whitelist_sync.cycle"):
                raise asyncio.CancelledError

        assert caplog.records[-1].getMessage() == "whitelist_sync.cycle.cancelled"


class TestLogWorkerHealth:
    def test_health_record(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger=logger.name)

        log_worker_health(
            logger, "whitelist_sync", 10, 2, 3600.7, extra_stats={"state": "succeeded"}
        )

        record = caplog.records[0]
        assert record.getMessage() == "worker.health"
        assert record.worker == "whitelist_sync"  # type: ignore[attr-defined]
        assert record.uptime_seconds == 3600  # type: ignore[attr-defined]
        assert record.error_rate == 0.2  # type: ignore[attr-defined]
        assert record.state == "succeeded"  # type: ignore[attr-defined]
