"""Fixtures for API tests against the full app, lifespan included.

The remote whitelist is the only thing faked: WhitelistClient.fetch is patched, everything
else (storage, worker, SQLite file) is the real thing.
"""

import logging
from collections.abc import AsyncIterator, Iterator
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pytest_mock import MockerFixture

from factories import make_payload
from soulgate.config.settings import Settings, WhitelistSettings
from soulgate.infrastructure.integrations.whitelist_client import WhitelistClient
from soulgate.main import create_app


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    """lifespan() calls configure_logging, which rewires the root logger."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def remote_fetch(mocker: MockerFixture) -> AsyncMock:
    """Patched fetch; tests set return_value or side_effect before the next sync."""
    return mocker.patch.object(
        WhitelistClient,
        "fetch",
        new_callable=AsyncMock,
        return_value=make_payload("h1", "a1", "a2"),
    )


async def _serve(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


@pytest.fixture
def app(settings: Settings, remote_fetch: AsyncMock) -> FastAPI:
    return create_app(settings)


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async for test_client in _serve(app):
        yield test_client


@pytest.fixture
async def unconfigured_client(settings: Settings) -> AsyncIterator[AsyncClient]:
    """App without WHITELIST__URL: no client, no worker."""
    app = create_app(settings.model_copy(update={"whitelist": WhitelistSettings()}))
    async for test_client in _serve(app):
        yield test_client
