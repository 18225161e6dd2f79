from unittest.mock import MagicMock, patch

import asyncpg
import pytest

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from pydantic import BaseModel, ValidationError

from api.middleware.exception_handlers import (
    AccountNotFoundError,
    AppException,
    ConflictingSessionError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidSessionError,
    NotificationNotFoundError,
    ResourceNotFoundError,
    register_exception_handlers,
)
from models.error_models import ErrorCode


@pytest.fixture
def test_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)
    return app


@pytest.fixture
def client(test_app: FastAPI) -> TestClient:
    # raise_server_exceptions=False ensures that we get the 500 response
    # instead of the client re-raising the exception.
    return TestClient(test_app, raise_server_exceptions=False)


def test_app_exception(test_app: FastAPI, client: TestClient) -> None:
    @test_app.get("/app_error")
    def raise_app_error() -> None:
        raise AppException(code=ErrorCode.INTERNAL_ERROR, message="Test error", details={"foo": "bar"})

    response = client.get("/app_error")
    assert response.status_code == 500
    body = response.json()
    assert body["message"] == "Test error"
    data = body["error"]
    assert data["code"] == ErrorCode.INTERNAL_ERROR.value
    assert data["path"] == "/app_error"
    assert data["details"] == [{"field": "foo", "message": "bar"}]


@pytest.mark.parametrize(
    ("exc", "status", "code"),
    [
        (InvalidCredentialsError(), 401, ErrorCode.AUTH_INVALID_CREDENTIALS),
        (InvalidSessionError(), 401, ErrorCode.SESSION_INVALID),
        (ForbiddenError("nope"), 403, ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS),
        (NotificationNotFoundError(12), 404, ErrorCode.NOTIFICATION_NOT_FOUND),
        (AccountNotFoundError(99), 404, ErrorCode.RESOURCE_NOT_FOUND),
        (AppException(ErrorCode.SERVICE_SHUTTING_DOWN, "down"), 503, ErrorCode.SERVICE_SHUTTING_DOWN),
    ],
)
def test_domain_errors_map_to_status(
    test_app: FastAPI, client: TestClient, exc: AppException, status: int, code: ErrorCode
) -> None:
    @test_app.get("/domain")
    def raise_domain() -> None:
        raise exc

    response = client.get("/domain")
    assert response.status_code == status
    assert response.json()["error"]["code"] == code.value


def test_conflicting_session_carries_force_login_fields(test_app: FastAPI, client: TestClient) -> None:
    @test_app.post("/login")
    def conflict() -> None:
        raise ConflictingSessionError(3)

    response = client.post("/login")
    assert response.status_code == 409
    body = response.json()
    assert body["requireForceLogin"] is True
    assert body["userId"] == 3
    assert body["error"]["code"] == ErrorCode.SESSION_CONFLICT.value


def test_resource_not_found_message(test_app: FastAPI, client: TestClient) -> None:
    @test_app.get("/not_found")
    def raise_not_found() -> None:
        raise ResourceNotFoundError(resource="Item", resource_id="123")

    response = client.get("/not_found")
    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Item '123' not found"


def test_http_exception_passes_headers(test_app: FastAPI, client: TestClient) -> None:
    @test_app.get("/http")
    def raise_http() -> None:
        raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Bearer"})

    response = client.get("/http")
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    assert response.json()["error"]["code"] == ErrorCode.AUTH_REQUIRED.value


def test_pydantic_request_validation_error(test_app: FastAPI, client: TestClient) -> None:
    """FastAPI RequestValidationError handler (auto-triggered by bad body)."""

    class Item(BaseModel):
        name: str
        age: int

    @test_app.post("/pydantic")
    def create_item(item: Item) -> Item:
        return item

    response = client.post("/pydantic", json={"name": "foo", "age": "not_an_int"})
    assert response.status_code == 422
    data = response.json()["error"]
    assert data["code"] == ErrorCode.VALIDATION_ERROR.value
    assert data["message"] == "Request validation failed"
    assert data["details"][0]["field"] == "body.age"


def test_pydantic_manual_validation_error(test_app: FastAPI, client: TestClient) -> None:
    class User(BaseModel):
        email: str

    @test_app.get("/manual_pydantic")
    def manual_error() -> None:
        User(email=123)  # type: ignore

    response = client.get("/manual_pydantic")
    assert response.status_code == 422
    data = response.json()["error"]
    assert data["message"] == "Data validation failed"
    assert len(data["details"]) > 0


def test_database_error_hides_query(test_app: FastAPI, client: TestClient) -> None:
    @test_app.get("/db_error")
    def raise_db_error() -> None:
        raise asyncpg.PostgresError("SELECT secret FROM accounts failed")

    with patch("api.middleware.exception_handlers.logger"):
        response = client.get("/db_error")

    assert response.status_code == 500
    data = response.json()["error"]
    assert data["code"] == ErrorCode.DATABASE_ERROR.value
    assert data["message"] == "Database operation failed"
    assert "secret" not in response.text


def test_generic_exception(test_app: FastAPI, client: TestClient) -> None:
    @test_app.get("/generic")
    def raise_generic() -> None:
        raise ValueError("Boom")

    with patch("api.middleware.exception_handlers.logger"):
        response = client.get("/generic")

    assert response.status_code == 500
    data = response.json()["error"]
    assert data["code"] == ErrorCode.INTERNAL_UNEXPECTED.value
    assert data["message"] == "An unexpected error occurred"
    assert "debug" not in data


def test_debug_mode_info(test_app: FastAPI, client: TestClient) -> None:
    mock_settings = MagicMock()
    mock_settings.debug = True

    with patch("api.middleware.exception_handlers.get_settings", return_value=mock_settings):

        @test_app.get("/debug_test")
        def raise_val_error() -> None:
            raise ValueError("Debug boom")

        with patch("api.middleware.exception_handlers.logger"):
            response = client.get("/debug_test")

    assert response.status_code == 500
    data = response.json()["error"]
    assert data["debug"]["exception_type"] == "ValueError"
    assert data["debug"]["exception_message"] == "Debug boom"
