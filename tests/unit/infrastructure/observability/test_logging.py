"""Tests for structured logging."""

import json
import logging
import sys

import pytest

from soulgate.infrastructure.observability.logging import (
    CompactExceptionFormatter,
    CorrelationIdFilter,
    CustomJsonFormatter,
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """configure_logging rewires the root logger, put it back for the next test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestCorrelationId:
    """Test correlation ID functionality."""

    def test_set_and_get_correlation_id(self) -> None:
        result = set_correlation_id("cycle-123")
        assert result == "cycle-123"
        assert get_correlation_id() == "cycle-123"

    def test_set_correlation_id_generates_uuid_when_none(self) -> None:
        result = set_correlation_id(None)
        assert len(result) == 36
        assert get_correlation_id() == result

    def test_filter_stamps_record(self) -> None:
        set_correlation_id("abc")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)

        assert CorrelationIdFilter().filter(record)
        assert record.correlation_id == "abc"  # type: ignore[attr-defined]


class TestLoggingConfiguration:
    def test_configure_logging_level(self) -> None:
        configure_logging(log_level="DEBUG", json_format=False, app_name="test-app")
        assert logging.getLogger("test").getEffectiveLevel() <= logging.DEBUG

        configure_logging(log_level="WARNING", json_format=False, app_name="test-app")
        assert logging.getLogger("test").getEffectiveLevel() == logging.WARNING

    def test_configure_logging_replaces_handlers(self) -> None:
        configure_logging(log_level="INFO", json_format=True)
        configure_logging(log_level="INFO", json_format=True)

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, CustomJsonFormatter)

    def test_noisy_libraries_are_quieted(self) -> None:
        configure_logging(log_level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("aiosqlite").level == logging.WARNING


class TestFormatters:
    def test_json_formatter_includes_extra_and_correlation_id(self) -> None:
        formatter = CustomJsonFormatter(app_name="soulgate-test")
        record = logging.LogRecord(
            "soulgate.worker", logging.INFO, __file__, 42, "worker.health", None, None
        )
        record.correlation_id = "cid-1"  # type: ignore[attr-defined]
        record.cycles_completed = 10  # type: ignore[attr-defined]

        data = json.loads(formatter.format(record))

        assert data["message"] == "worker.health"
        assert data["level"] == "INFO"
        assert data["logger"] == "soulgate.worker"
        assert data["app"] == "soulgate-test"
        assert data["correlation_id"] == "cid-1"
        assert data["cycles_completed"] == 10
        assert "timestamp" in data

    def test_json_formatter_drops_empty_correlation_id(self) -> None:
        record = logging.LogRecord("soulgate", logging.INFO, __file__, 1, "startup", None, None)
        record.correlation_id = ""  # type: ignore[attr-defined]

        data = json.loads(CustomJsonFormatter().format(record))

        assert "correlation_id" not in data

    def test_compact_formatter_shows_exception_chain(self) -> None:
        formatter = CompactExceptionFormatter("%(message)s")
        try:
            try:
                raise ConnectionError("refused")
            except ConnectionError as inner:
                raise RuntimeError("fetch failed") from inner
        except RuntimeError:
            text = formatter.formatException(sys.exc_info())  # type: ignore[arg-type]

        assert text.index("ConnectionError: refused") < text.index("RuntimeError: fetch failed")

    @pytest.mark.parametrize("exc_info", [(None, None, None)])
    def test_compact_formatter_without_exception(self, exc_info: tuple) -> None:
        assert CompactExceptionFormatter().formatException(exc_info) == ""  # type: ignore[arg-type]
