"""
User notification endpoints (v1).

The caller sees broadcast notifications plus those targeted at them, and
may only mark those rows read.
"""

from __future__ import annotations

from fastapi import APIRouter, Path

from api.dependencies import Dispatcher
from api.middleware.auth import CurrentUser
from models.schemas.auth import MessageResponse
from models.schemas.notifications import MarkAllReadResponse, NotificationListResponse

router = APIRouter()


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List notifications",
    description="Notifications visible to the caller, newest first. Always read from the database.",
)
async def list_notifications(user: CurrentUser, dispatcher: Dispatcher) -> NotificationListResponse:
    notifications = await dispatcher.list_for_user(user.user_id)
    return NotificationListResponse(
        notifications=notifications,
        unread_count=sum(1 for n in notifications if not n.read),
    )


@router.put(
    "/{notification_id}/read",
    response_model=MessageResponse,
    summary="Mark notification read",
    responses={
        200: {"content": {"application/json": {"example": {"message": "Notification marked as read"}}}},
        403: {"description": "Notification is targeted at another user"},
        404: {"description": "Notification not found"},
    },
)
async def mark_read(
    user: CurrentUser,
    dispatcher: Dispatcher,
    notification_id: int = Path(..., ge=1),
) -> MessageResponse:
    await dispatcher.mark_read(notification_id, user.user_id)
    return MessageResponse(message="Notification marked as read")


@router.patch(
    "/read-all",
    response_model=MarkAllReadResponse,
    summary="Mark all notifications read",
    responses={
        200: {"content": {"application/json": {"example": {"message": "All notifications marked as read", "updated": 4}}}},
    },
)
async def mark_all_read(user: CurrentUser, dispatcher: Dispatcher) -> MarkAllReadResponse:
    updated = await dispatcher.mark_all_read(user.user_id)
    return MarkAllReadResponse(message="All notifications marked as read", updated=updated)
