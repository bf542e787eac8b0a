"""Application lifecycle management for startup and shutdown tasks.

Startup order:
1. Logging
2. SQLite path validation, database engine, tables
3. Whitelist storage and sync progress publisher
4. Whitelist client and sync worker (only if WHITELIST__URL is set)
5. Blocking startup sync (soft failure) then the background loop

Shutdown runs in reverse and never raises.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI

from soulgate.application.services.sync_progress import SyncProgressPublisher
from soulgate.application.workers.whitelist_sync_worker import WhitelistSyncWorker
from soulgate.config import Settings, get_settings
from soulgate.domain.exceptions import ConfigurationError, SyncError
from soulgate.infrastructure.integrations.whitelist_client import WhitelistClient
from soulgate.infrastructure.observability import configure_logging
from soulgate.infrastructure.persistence import Database, SqlAlchemyWhitelistStorage

logger = logging.getLogger(__name__)


# Hey future me - a read-only data volume used to show up as a cryptic "unable to open database
# file" on the FIRST sync commit. Probing here turns it into a ConfigurationError at startup. SQLite
# writes -wal/-shm files next to the .db, so the DIRECTORY must be writable, not just the file.
def _validate_sqlite_path(settings: Settings) -> None:
    """Fail fast if the SQLite database directory can't be created or written."""
    db_path = settings._get_sqlite_db_path()
    if db_path is None:
        return

    directory = db_path.parent
    probe = directory / f".{db_path.name}.probe"
    try:
        directory.mkdir(parents=True, exist_ok=True)
        probe.touch()
        probe.unlink()
    except OSError as exc:
        raise ConfigurationError(
            f"SQLite directory '{directory}' is not writable ({exc}). "
            "Fix the volume permissions or point DATABASE__URL elsewhere."
        ) from exc
    logger.debug("database.sqlite_path_ok", extra={"path": str(db_path)})


def _resolve_settings(app: FastAPI) -> Settings:
    settings = getattr(app.state, "settings", None)
    if isinstance(settings, Settings):
        return settings
    return get_settings()


# Listen future me, everything before `yield` runs at STARTUP, everything after at SHUTDOWN.
# The startup sync is the ONLY potentially slow thing here and it is capped by
# whitelist.startup_timeout_seconds. If it fails we log and carry on with whatever snapshot is
# on disk - a flaky whitelist host must never keep the app from starting.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = _resolve_settings(app)

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("app.starting", extra={"app_name": settings.app_name})

    try:
        _validate_sqlite_path(settings)

        db = Database(settings)
        app.state.db = db
        await db.create_tables()
        logger.info("database.ready", extra={"sqlite": db.is_sqlite})

        storage = SqlAlchemyWhitelistStorage(db)
        app.state.whitelist_storage = storage
        publisher = SyncProgressPublisher()
        app.state.sync_progress = publisher
        app.state.sync_worker = None

        if settings.whitelist.url is None:
            logger.warning(
                "whitelist_sync.disabled",
                extra={"reason": "WHITELIST__URL is not configured"},
            )
        else:
            client = WhitelistClient(settings.whitelist)
            app.state.whitelist_client = client
            worker = WhitelistSyncWorker(
                fetcher=client,
                storage=storage,
                publisher=publisher,
                settings=settings.whitelist,
            )
            app.state.sync_worker = worker

            try:
                state = await worker.sync_blocking()
                logger.info("whitelist_sync.startup.completed", extra=state.to_dict())
            except SyncError as e:
                logger.warning(
                    "whitelist_sync.startup.failed",
                    extra={"error": e.kind.value, "reason": e.message},
                )

            await worker.start_background_loop()

        app.state.startup_time = datetime.now(UTC)
        yield

    except Exception as e:
        logger.exception("app.startup_failed", extra={"error": str(e)})
        raise
    finally:
        logger.info("app.stopping")

        worker = getattr(app.state, "sync_worker", None)
        if worker is not None:
            try:
                await worker.stop()
            except Exception as e:
                logger.exception("whitelist_sync.stop_failed", extra={"error": str(e)})

        client = getattr(app.state, "whitelist_client", None)
        if client is not None:
            try:
                await client.close()
            except Exception as e:
                logger.exception("whitelist_client.close_failed", extra={"error": str(e)})

        if hasattr(app.state, "db"):
            try:
                await app.state.db.close()
                logger.info("database.closed")
            except Exception as e:
                logger.exception("database.close_failed", extra={"error": str(e)})
