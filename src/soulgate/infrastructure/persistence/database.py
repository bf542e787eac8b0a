"""Async engine and transactional sessions for the whitelist and catalog tables."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from soulgate.config.settings import DatabaseSettings, Settings

logger = logging.getLogger(__name__)

# Seconds a SQLite connection waits for the writer lock before "database is locked".
# with_db_retry handles whatever still slips through.
SQLITE_BUSY_TIMEOUT_SECONDS = 30


def _engine_options(db_settings: DatabaseSettings) -> dict[str, Any]:
    options: dict[str, Any] = {
        "echo": db_settings.echo,
        "pool_pre_ping": db_settings.pool_pre_ping,
    }
    backend = make_url(db_settings.url).get_backend_name()
    if backend == "postgresql":
        options.update(
            pool_size=db_settings.pool_size,
            max_overflow=db_settings.max_overflow,
            pool_timeout=db_settings.pool_timeout,
            pool_recycle=db_settings.pool_recycle,
        )
    elif backend == "sqlite":
        options["connect_args"] = {
            "check_same_thread": False,
            "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
        }
    return options


class Database:
    """Owns the engine; hands out one transaction per session_scope()."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.is_sqlite = make_url(settings.database.url).get_backend_name() == "sqlite"

        self._engine = create_async_engine(
            settings.database.url, **_engine_options(settings.database)
        )
        if self.is_sqlite:
            self._install_sqlite_pragmas()

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    # Hey future me - SQLite ships with foreign keys OFF. Without this pragma the ON DELETE
    # CASCADE on the credit tables does nothing and a cascade that forgets a mapping table
    # "succeeds" with dangling rows. WAL lets API readers keep reading the old snapshot while
    # a sync transaction is writing the new one.
    def _install_sqlite_pragmas(self) -> None:
        @event.listens_for(self._engine.sync_engine, "connect")
        def _on_connect(dbapi_conn: Any, _connection_record: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """One transaction: commit on success, roll back and re-raise on any error."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> None:
        """Round-trip to the database; raises SQLAlchemyError when unreachable."""
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def close(self) -> None:
        await self._engine.dispose()
        logger.debug("database.disposed", extra={"url": self._engine.url.render_as_string()})

    async def create_tables(self) -> None:
        """Create the schema (tests and local runs; deployments use Alembic)."""
        from soulgate.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
