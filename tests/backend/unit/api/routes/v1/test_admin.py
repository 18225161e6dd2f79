from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.dependencies import get_admin_service, get_dispatcher, get_session_guard
from api.middleware.exception_handlers import (
    AccountNotFoundError,
    ForbiddenError,
    NotificationNotFoundError,
    register_exception_handlers,
)
from api.routes.v1.admin import router
from models.schemas.admin import AdminStats
from models.schemas.auth import UserInfo
from models.schemas.notifications import NotificationInfo

ADMIN = UserInfo(user_id=1, username="root", role="admin")
USER = UserInfo(user_id=5, username="bob", role="user")
ADMIN_AUTH = {"X-User-Id": "1", "Authorization": "Bearer admin-token"}
USER_AUTH = {"X-User-Id": "5", "Authorization": "Bearer user-token"}


def _notification(notification_id: int = 42, recipient_id: int | None = None) -> NotificationInfo:
    return NotificationInfo(
        notification_id=notification_id,
        title="System maintenance",
        content="Tonight",
        created_at=datetime(2024, 5, 1, tzinfo=UTC),
        sender_id=1,
        sender_name="root",
        recipient_id=recipient_id,
        read=False,
    )


@pytest.fixture
def mock_guard() -> MagicMock:
    guard = MagicMock()

    async def validate(user_id: int, token: str) -> UserInfo:
        return ADMIN if user_id == 1 else USER

    guard.validate = AsyncMock(side_effect=validate)
    return guard


@pytest.fixture
def mock_dispatcher() -> MagicMock:
    dispatcher = MagicMock()
    dispatcher.list_all = AsyncMock(return_value=[])
    dispatcher.create = AsyncMock(return_value=_notification())
    dispatcher.delete = AsyncMock(return_value=_notification())
    return dispatcher


@pytest.fixture
def mock_admin_service() -> MagicMock:
    service = MagicMock()
    service.online_user_ids = AsyncMock(return_value=[5, 7, 9])
    service.heartbeat = AsyncMock()
    service.stats = AsyncMock(
        return_value=AdminStats(
            total_users=4,
            admin_count=1,
            users_by_role=[{"role": "admin", "count": 1}, {"role": "user", "count": 3}],
            total_notifications=10,
            unread_notifications=4,
            new_users_7d=2,
            active_users_7d=3,
            new_notifications_7d=6,
        )
    )
    service.invalidate_stats = AsyncMock(return_value=True)
    return service


@pytest.fixture
def client(mock_guard: MagicMock, mock_dispatcher: MagicMock, mock_admin_service: MagicMock) -> TestClient:
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1/admin")
    app.dependency_overrides[get_session_guard] = lambda: mock_guard
    app.dependency_overrides[get_dispatcher] = lambda: mock_dispatcher
    app.dependency_overrides[get_admin_service] = lambda: mock_admin_service
    return TestClient(app, raise_server_exceptions=False)


class TestNotifications:
    def test_non_admin_is_forbidden(self, client: TestClient, mock_dispatcher: MagicMock) -> None:
        response = client.post(
            "/api/v1/admin/notifications",
            json={"title": "t", "content": "c"},
            headers=USER_AUTH,
        )

        assert response.status_code == 403
        mock_dispatcher.create.assert_not_awaited()

    def test_create_broadcast_defaults_sender_to_caller(self, client: TestClient, mock_dispatcher: MagicMock) -> None:
        response = client.post(
            "/api/v1/admin/notifications",
            json={"title": "System maintenance", "content": "Tonight"},
            headers=ADMIN_AUTH,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["message"] == "Notification sent"
        assert data["notification"]["notification_id"] == 42
        mock_dispatcher.create.assert_awaited_once_with(
            title="System maintenance", content="Tonight", sender_id=1, recipient_id=None
        )

    def test_create_with_own_sender_id(self, client: TestClient, mock_dispatcher: MagicMock) -> None:
        response = client.post(
            "/api/v1/admin/notifications",
            json={"title": "t", "content": "c", "sender_id": 1},
            headers=ADMIN_AUTH,
        )

        assert response.status_code == 201
        assert mock_dispatcher.create.await_args.kwargs["sender_id"] == 1

    def test_create_as_another_admin_is_forbidden(self, client: TestClient, mock_dispatcher: MagicMock) -> None:
        response = client.post(
            "/api/v1/admin/notifications",
            json={"title": "t", "content": "c", "sender_id": 2},
            headers=ADMIN_AUTH,
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTH_1004"
        mock_dispatcher.create.assert_not_awaited()

    def test_create_targeted(self, client: TestClient, mock_dispatcher: MagicMock) -> None:
        mock_dispatcher.create.return_value = _notification(recipient_id=7)

        response = client.post(
            "/api/v1/admin/notifications",
            json={"title": "t", "content": "c", "recipient_id": 7},
            headers=ADMIN_AUTH,
        )

        assert response.status_code == 201
        assert mock_dispatcher.create.await_args.kwargs["recipient_id"] == 7

    def test_create_for_unknown_recipient(self, client: TestClient, mock_dispatcher: MagicMock) -> None:
        mock_dispatcher.create.side_effect = AccountNotFoundError(999)

        response = client.post(
            "/api/v1/admin/notifications",
            json={"title": "t", "content": "c", "recipient_id": 999},
            headers=ADMIN_AUTH,
        )

        assert response.status_code == 404

    def test_create_requires_title(self, client: TestClient) -> None:
        response = client.post("/api/v1/admin/notifications", json={"content": "c"}, headers=ADMIN_AUTH)

        assert response.status_code == 422

    def test_list_all(self, client: TestClient, mock_dispatcher: MagicMock) -> None:
        mock_dispatcher.list_all.return_value = [_notification(2), _notification(1, recipient_id=7)]

        response = client.get("/api/v1/admin/notifications", headers=ADMIN_AUTH)

        assert response.status_code == 200
        assert response.json()["unread_count"] == 2

    def test_delete(self, client: TestClient, mock_dispatcher: MagicMock) -> None:
        response = client.delete("/api/v1/admin/notifications/42", headers=ADMIN_AUTH)

        assert response.status_code == 200
        assert response.json() == {"message": "Notification deleted", "notification_id": 42}
        mock_dispatcher.delete.assert_awaited_once_with(42)

    def test_delete_missing(self, client: TestClient, mock_dispatcher: MagicMock) -> None:
        mock_dispatcher.delete.side_effect = NotificationNotFoundError(42)

        response = client.delete("/api/v1/admin/notifications/42", headers=ADMIN_AUTH)

        assert response.status_code == 404


class TestOnlineUsers:
    def test_online_users(self, client: TestClient) -> None:
        response = client.get("/api/v1/admin/online-users", headers=ADMIN_AUTH)

        assert response.status_code == 200
        assert response.json() == {"onlineUserIds": [5, 7, 9], "count": 3}

    def test_user_heartbeat_for_self(self, client: TestClient, mock_admin_service: MagicMock) -> None:
        response = client.post("/api/v1/admin/online-users/heartbeat", json={"userId": 5}, headers=USER_AUTH)

        assert response.status_code == 200
        mock_admin_service.heartbeat.assert_awaited_once_with(5)

    def test_user_heartbeat_for_someone_else(self, client: TestClient, mock_admin_service: MagicMock) -> None:
        response = client.post("/api/v1/admin/online-users/heartbeat", json={"userId": 7}, headers=USER_AUTH)

        assert response.status_code == 403
        mock_admin_service.heartbeat.assert_not_awaited()

    def test_admin_heartbeat_for_anyone(self, client: TestClient, mock_admin_service: MagicMock) -> None:
        response = client.post("/api/v1/admin/online-users/heartbeat", json={"userId": 7}, headers=ADMIN_AUTH)

        assert response.status_code == 200
        mock_admin_service.heartbeat.assert_awaited_once_with(7)


class TestStats:
    def test_stats(self, client: TestClient) -> None:
        response = client.get("/api/v1/admin/stats", headers=ADMIN_AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["total_users"] == 4
        assert data["users_by_role"][0] == {"role": "admin", "count": 1}

    def test_stats_forbidden_for_users(self, client: TestClient) -> None:
        assert client.get("/api/v1/admin/stats", headers=USER_AUTH).status_code == 403

    def test_invalidate_stats(self, client: TestClient, mock_admin_service: MagicMock) -> None:
        response = client.post("/api/v1/admin/stats/invalidate", headers=ADMIN_AUTH)

        assert response.status_code == 200
        assert response.json()["key"] == "admin:stats"
        mock_admin_service.invalidate_stats.assert_awaited_once()
