"""Tests for health check endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

from knowledge_lifecycle.main import create_app


@pytest.fixture
async def client(service):
    """Async test client around an injected service (lifespan is not run)."""
    transport = ASGITransport(app=create_app(service))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    """Test basic health endpoint returns ok."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_root(client: AsyncClient):
    """Test root endpoint returns app info."""
    response = await client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "name" in data
    assert data["version"] == "0.1.0"


@pytest.mark.asyncio
async def test_health_ready(client: AsyncClient):
    response = await client.get("/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["services"] == {"vector": "ok", "relational": "ok", "redis": "ok"}


@pytest.mark.asyncio
async def test_health_ready_degraded(client: AsyncClient, vector_store, fake_redis):
    """An unreachable store or Redis reports degraded, not an error."""
    vector_store.available = False
    fake_redis.fail = True

    response = await client.get("/health/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["services"]["vector"] == "error: StoreUnavailable"
    assert data["services"]["redis"] == "error: no response"
    assert data["services"]["relational"] == "ok"


@pytest.mark.asyncio
async def test_health_ready_before_startup():
    transport = ASGITransport(app=create_app())
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health/ready")
    assert response.json() == {"status": "starting", "services": {}}
