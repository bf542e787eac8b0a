"""Shared test fixtures.

Hey future me - storage and worker tests run against a REAL aiosqlite file in tmp_path, not
mocks. The cascade is all about foreign keys and transaction boundaries, and mocks would
happily "pass" a cascade that SQLite rejects. Payload builders and the catalog seeder live in
factories.py so test modules can import them.
"""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from factories import WHITELIST_URL, CatalogSeeder
from soulgate.config.settings import (
    DatabaseSettings,
    ObservabilitySettings,
    Settings,
    WhitelistSettings,
)
from soulgate.infrastructure.persistence.database import Database
from soulgate.infrastructure.persistence.repositories import SqlAlchemyWhitelistStorage
from soulgate.infrastructure.persistence.retry import DatabaseLockMetrics


@pytest.fixture(autouse=True)
def reset_lock_metrics() -> None:
    DatabaseLockMetrics.get_instance().reset()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a throwaway SQLite file, no retries, no sleeps."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        log_level="DEBUG",
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'soulgate.db'}"),
        whitelist=WhitelistSettings(
            url=WHITELIST_URL,
            background_interval_seconds=3600,
            startup_timeout_seconds=5,
            fetch_retries=0,
            retry_initial_delay_seconds=0,
        ),
        observability=ObservabilitySettings(log_json_format=False),
    )


@pytest.fixture
async def db(settings: Settings) -> AsyncIterator[Database]:
    database = Database(settings)
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
def storage(db: Database) -> SqlAlchemyWhitelistStorage:
    return SqlAlchemyWhitelistStorage(db)


@pytest.fixture
def catalog(db: Database) -> CatalogSeeder:
    return CatalogSeeder(db)
