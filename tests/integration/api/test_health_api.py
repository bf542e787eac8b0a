"""Liveness and readiness probes."""

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.integration


async def test_liveness(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "alive"


async def test_readiness(client: AsyncClient) -> None:
    response = await client.get("/health/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["database"] is True
    assert data["sync_worker"] is True
    assert data["sync_state"] == "succeeded"


async def test_readiness_without_whitelist_source(unconfigured_client: AsyncClient) -> None:
    response = await unconfigured_client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["sync_worker"] is True
    assert response.json()["sync_state"] == "idle"
