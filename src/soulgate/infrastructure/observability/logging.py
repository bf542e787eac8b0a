"""Logging setup: JSON or compact console output, with a per-cycle correlation ID."""

import contextvars
import logging
import sys
import traceback
import uuid
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

# Hey future me - the sync worker calls set_correlation_id() at the start of EVERY cycle, so one
# grep pulls out a whole fetch -> diff -> cascade run even when the background loop and a manual
# refresh log at the same time. contextvars follow asyncio tasks, so each cycle task keeps its own
# value. Startup logs have no cycle and get "".
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

# Chatty at INFO, useless for whitelist debugging.
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "aiosqlite", "uvicorn.access")


def get_correlation_id() -> str:
    """Current correlation ID, "" outside a sync cycle."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current context.

    Args:
        correlation_id: ID to use; a new UUID4 when None

    Returns:
        The ID now in effect
    """
    value = correlation_id if correlation_id is not None else str(uuid.uuid4())
    correlation_id_var.set(value)
    return value


class CorrelationIdFilter(logging.Filter):
    """Stamps correlation_id on every record passing the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        return True


class CompactExceptionFormatter(logging.Formatter):
    """Console formatter that prints exception chains root cause first.

    Only frames from soulgate itself are shown, e.g.::

        ╰─► ConnectError: All connection attempts failed
        ╰─► FetchError: Whitelist request failed: All connection attempts failed
            File "whitelist_client.py", line 97, in fetch
              raise FetchError(FetchErrorKind.NETWORK, ...) from e
    """

    def formatException(self, ei: Any) -> str:  # noqa: N802
        exc = ei[1]
        if exc is None:
            return ""

        chain: list[BaseException] = []
        current: BaseException | None = exc
        while current is not None and current not in chain:
            chain.append(current)
            if current.__cause__ is not None or current.__suppress_context__:
                current = current.__cause__
            else:
                current = current.__context__
        chain.reverse()

        lines: list[str] = []
        for part in chain:
            lines.append(f"╰─► {type(part).__name__}: {part}")
            for frame in traceback.extract_tb(part.__traceback__):
                if "soulgate" not in frame.filename or "site-packages" in frame.filename:
                    continue
                lines.append(
                    f'    File "{Path(frame.filename).name}", line {frame.lineno}, in {frame.name}'
                )
                if frame.line:
                    lines.append(f"      {frame.line.strip()}")
        return "\n".join(lines)


class CustomJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[misc]
    """One JSON object per line.

    Fields: timestamp, level, logger, message, app, correlation_id (inside a
    cycle) and whatever the call site passed via ``extra=``.
    """

    def __init__(self, app_name: str = "soulgate") -> None:
        super().__init__(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
            static_fields={"app": app_name},
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("correlation_id"):
            log_record.pop("correlation_id", None)


def _build_formatter(json_format: bool, app_name: str) -> logging.Formatter:
    if json_format:
        return CustomJsonFormatter(app_name=app_name)
    return CompactExceptionFormatter(
        fmt="%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(message)s",
        datefmt="%H:%M:%S",
    )


# Listen future me, lifespan() calls this once at startup. It REPLACES the root handlers, so a
# second call (tests, reloads) doesn't double every line.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "soulgate",
) -> None:
    """Configure root logging.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_format: JSON lines for log shipping instead of the console format
        app_name: Added to every JSON record as "app"
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(_build_formatter(json_format, app_name))

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "logging.configured",
        extra={"app_name": app_name, "log_level": log_level, "json_format": json_format},
    )
