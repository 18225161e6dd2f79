from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.dependencies import get_app_settings, get_cache, get_db
from api.realtime.connection import Connection
from api.realtime.registry import ConnectionRegistry
from api.routes.v1.health import router
from utils.cache import TTLCache


@pytest.fixture
def mock_db_pool() -> MagicMock:
    pool = MagicMock()
    pool.get_size.return_value = 10
    pool.get_idle_size.return_value = 8

    cm = MagicMock()
    conn = AsyncMock()
    cm.__aenter__ = AsyncMock(return_value=conn)
    cm.__aexit__ = AsyncMock(return_value=None)
    pool.acquire.return_value = cm

    return pool


@pytest.fixture
def registries() -> tuple[ConnectionRegistry, ConnectionRegistry]:
    return ConnectionRegistry("session"), ConnectionRegistry("notifications")


@pytest.fixture
def app(
    mock_db_pool: MagicMock,
    registries: tuple[ConnectionRegistry, ConnectionRegistry],
    mock_settings_for_ci: MagicMock,
) -> FastAPI:
    app = FastAPI()
    app.include_router(router, prefix="")

    app.dependency_overrides[get_db] = lambda: mock_db_pool
    app.dependency_overrides[get_cache] = lambda: TTLCache(name="admin")
    app.dependency_overrides[get_app_settings] = lambda: mock_settings_for_ci

    app.state.session_registry, app.state.notification_registry = registries
    app.state.started_at = 1_700_000_000.0

    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def test_liveness_check(client: TestClient) -> None:
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json()["alive"] is True


def test_readiness_check_success(client: TestClient, mock_db_pool: MagicMock) -> None:
    conn = mock_db_pool.acquire.return_value.__aenter__.return_value
    conn.fetchval.return_value = 1

    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["ready"] is True


def test_readiness_check_failure(client: TestClient, mock_db_pool: MagicMock) -> None:
    mock_db_pool.acquire.side_effect = OSError("connection refused")

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.json() == {"ready": False, "error": "Database unavailable"}


@pytest.mark.asyncio
async def test_health_check_healthy(
    client: TestClient, registries: tuple[ConnectionRegistry, ConnectionRegistry]
) -> None:
    await registries[1].register(7, Connection(7, "notifications"))

    with patch("api.routes.v1.health.check_pool_health", new_callable=AsyncMock) as mock_check:
        mock_check.return_value = {"healthy": True, "pool_size": 10, "free_connections": 8, "used_connections": 2}

        response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["version"] == "1.0.0-test"
    assert data["database"]["pool_used"] == 2
    channels = {c["channel"]: c for c in data["channels"]}
    assert channels["notifications"]["connections"] == 1
    assert channels["session"]["users"] == 0
    assert data["cache"]["name"] == "admin"


def test_health_check_degraded_when_database_down(client: TestClient) -> None:
    with patch("api.routes.v1.health.check_pool_health", new_callable=AsyncMock) as mock_check:
        mock_check.return_value = {"healthy": False, "error": "Connection failed"}

        response = client.get("/health")

    data = response.json()
    assert data["status"] == "degraded"
    assert data["database"]["healthy"] is False


@pytest.mark.asyncio
async def test_health_check_unhealthy(
    client: TestClient, registries: tuple[ConnectionRegistry, ConnectionRegistry]
) -> None:
    await registries[0].graceful_shutdown()

    with patch("api.routes.v1.health.check_pool_health", new_callable=AsyncMock) as mock_check:
        mock_check.return_value = {"healthy": False}

        response = client.get("/health")

    assert response.json()["status"] == "unhealthy"
