"""
Admin console endpoints (v1).

Notification authoring plus the cached online-user and statistics views.
Everything except the activity heartbeat requires an authenticated admin.
"""

from __future__ import annotations

from fastapi import APIRouter, Path

from api.dependencies import Admin, Dispatcher
from api.middleware.auth import CurrentAdmin, CurrentUser
from api.middleware.exception_handlers import ForbiddenError
from core.constants import ADMIN_ROLE, CACHE_KEY_ADMIN_STATS
from models.schemas.admin import (
    AdminStats,
    CacheInvalidatedResponse,
    HeartbeatRequest,
    OnlineUsersResponse,
)
from models.schemas.auth import MessageResponse
from models.schemas.notifications import (
    NotificationCreateRequest,
    NotificationDeletedResponse,
    NotificationListResponse,
    NotificationResponse,
)

router = APIRouter()


@router.get(
    "/notifications",
    response_model=NotificationListResponse,
    summary="List all notifications",
    description="Every notification, newest first. Served from a short-lived cache.",
)
async def list_all_notifications(admin: CurrentAdmin, dispatcher: Dispatcher) -> NotificationListResponse:
    notifications = await dispatcher.list_all()
    return NotificationListResponse(
        notifications=notifications,
        unread_count=sum(1 for n in notifications if not n.read),
    )


@router.post(
    "/notifications",
    response_model=NotificationResponse,
    status_code=201,
    summary="Send notification",
    description=(
        "Persist a notification and push it to live streams: the recipient's when "
        "`recipient_id` is set, everyone's otherwise."
    ),
    responses={
        403: {"description": "Caller is not an admin, or `sender_id` names another account"},
        404: {"description": "Recipient not found"},
    },
)
async def create_notification(
    body: NotificationCreateRequest,
    admin: CurrentAdmin,
    dispatcher: Dispatcher,
) -> NotificationResponse:
    if body.sender_id is not None and body.sender_id != admin.user_id:
        raise ForbiddenError("Cannot send a notification as another user", details={"sender_id": body.sender_id})
    notification = await dispatcher.create(
        title=body.title,
        content=body.content,
        sender_id=admin.user_id,
        recipient_id=body.recipient_id,
    )
    return NotificationResponse(message="Notification sent", notification=notification)


@router.delete(
    "/notifications/{notification_id}",
    response_model=NotificationDeletedResponse,
    summary="Delete notification",
    responses={404: {"description": "Notification not found"}},
)
async def delete_notification(
    admin: CurrentAdmin,
    dispatcher: Dispatcher,
    notification_id: int = Path(..., ge=1),
) -> NotificationDeletedResponse:
    await dispatcher.delete(notification_id)
    return NotificationDeletedResponse(message="Notification deleted", notification_id=notification_id)


@router.get(
    "/online-users",
    response_model=OnlineUsersResponse,
    summary="Online users",
    description="Users with a live stream or recent activity. Served from a short-lived cache.",
)
async def online_users(admin: CurrentAdmin, service: Admin) -> OnlineUsersResponse:
    user_ids = await service.online_user_ids()
    return OnlineUsersResponse(online_user_ids=user_ids, count=len(user_ids))


@router.post(
    "/online-users/heartbeat",
    response_model=MessageResponse,
    summary="Record user activity",
    description="Called periodically by clients; any user may report their own activity.",
    responses={403: {"description": "Reporting for another user"}, 404: {"description": "User not found"}},
)
async def heartbeat(body: HeartbeatRequest, user: CurrentUser, service: Admin) -> MessageResponse:
    if body.user_id != user.user_id and user.role != ADMIN_ROLE:
        raise ForbiddenError("Cannot record activity for another user")
    await service.heartbeat(body.user_id)
    return MessageResponse(message="Activity recorded")


@router.get(
    "/stats",
    response_model=AdminStats,
    summary="Dashboard statistics",
    description="Aggregate account and notification counts. Served from a cache.",
)
async def stats(admin: CurrentAdmin, service: Admin) -> AdminStats:
    return await service.stats()


@router.post(
    "/stats/invalidate",
    response_model=CacheInvalidatedResponse,
    summary="Refresh dashboard statistics",
)
async def invalidate_stats(admin: CurrentAdmin, service: Admin) -> CacheInvalidatedResponse:
    await service.invalidate_stats()
    return CacheInvalidatedResponse(message="Statistics cache cleared", key=CACHE_KEY_ADMIN_STATS)
