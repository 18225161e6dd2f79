from unittest.mock import AsyncMock, MagicMock

import pytest

from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.dependencies import get_session_guard
from api.middleware.exception_handlers import (
    ConflictingSessionError,
    InvalidCredentialsError,
    InvalidSessionError,
    register_exception_handlers,
)
from api.routes.v1.auth import router
from api.services.session_guard import LoginResult
from models.schemas.auth import UserInfo

USER = UserInfo(user_id=3, username="alice", role="user")
TOKEN_A = "0b5e8c84-3f5c-4e5c-9a5a-2d0b8e2c4f11"
TOKEN_B = "7d1f0c55-58a4-4c3e-8f0e-3f1c2a9b6e22"


@pytest.fixture
def mock_guard() -> MagicMock:
    guard = MagicMock()
    guard.login = AsyncMock(return_value=LoginResult(token=TOKEN_A, user=USER))
    guard.logout = AsyncMock()
    guard.validate = AsyncMock(return_value=USER)
    return guard


@pytest.fixture
def app(mock_guard: MagicMock) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1/auth")

    app.dependency_overrides[get_session_guard] = lambda: mock_guard
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app, raise_server_exceptions=False)


def test_login_success(client: TestClient, mock_guard: MagicMock) -> None:
    response = client.post(
        "/api/v1/auth/login",
        json={"username": "alice", "password": "secret"},
        headers={"User-Agent": "pytest-agent"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Login successful"
    assert data["token"] == TOKEN_A
    assert data["user"] == {"userId": 3, "username": "alice", "role": "user"}
    args = mock_guard.login.await_args
    assert args.args == ("alice", "secret")
    assert args.kwargs["force_login"] is False
    assert args.kwargs["user_agent"] == "pytest-agent"


def test_login_accepts_password_hash_field(client: TestClient, mock_guard: MagicMock) -> None:
    response = client.post("/api/v1/auth/login", json={"username": "alice", "passwordHash": "secret"})

    assert response.status_code == 200
    assert mock_guard.login.await_args.args == ("alice", "secret")


def test_login_invalid_credentials(client: TestClient, mock_guard: MagicMock) -> None:
    mock_guard.login.side_effect = InvalidCredentialsError()

    response = client.post("/api/v1/auth/login", json={"username": "alice", "password": "wrong"})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_1006"


def test_login_conflict_then_forced_login(client: TestClient, mock_guard: MagicMock) -> None:
    """Second device is told to force; forcing issues a new token."""
    mock_guard.login.side_effect = [
        ConflictingSessionError(3),
        LoginResult(token=TOKEN_B, user=USER, replaced_session=True),
    ]

    conflict = client.post("/api/v1/auth/login", json={"username": "alice", "password": "secret"})

    assert conflict.status_code == 409
    body = conflict.json()
    assert body["requireForceLogin"] is True
    assert body["userId"] == 3
    assert body["message"] == "Account is already logged in on another device"

    forced = client.post(
        "/api/v1/auth/login",
        json={"username": "alice", "password": "secret", "forceLogin": True},
    )

    assert forced.status_code == 200
    assert forced.json()["token"] == TOKEN_B
    assert mock_guard.login.await_args.kwargs["force_login"] is True


def test_login_missing_fields(client: TestClient) -> None:
    response = client.post("/api/v1/auth/login", json={"username": "alice"})

    assert response.status_code == 422


def test_logout(client: TestClient, mock_guard: MagicMock) -> None:
    response = client.post("/api/v1/auth/logout", json={"userId": 3, "sessionToken": TOKEN_A})

    assert response.status_code == 200
    assert response.json() == {"message": "Logout successful"}
    mock_guard.logout.assert_awaited_once_with(3, TOKEN_A)


def test_logout_invalid_session(client: TestClient, mock_guard: MagicMock) -> None:
    mock_guard.logout.side_effect = InvalidSessionError()

    response = client.post("/api/v1/auth/logout", json={"userId": 3, "sessionToken": "stale"})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "SES_4003"


def test_check_valid(client: TestClient) -> None:
    response = client.post("/api/v1/auth/check", json={"userId": 3, "sessionToken": TOKEN_A})

    assert response.status_code == 200
    assert response.json() == {"valid": True}


def test_check_invalid(client: TestClient, mock_guard: MagicMock) -> None:
    mock_guard.validate.side_effect = InvalidSessionError()

    response = client.post("/api/v1/auth/check", json={"userId": 3, "sessionToken": "stale"})

    assert response.status_code == 401
    assert response.json() == {"valid": False}
