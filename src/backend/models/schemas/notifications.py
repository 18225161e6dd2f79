"""
Notification API schemas.

Request/response models for the user and admin notification endpoints.
The same ``NotificationInfo`` shape is embedded in push events.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class NotificationInfo(BaseModel):
    """One stored notification as seen by clients."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "notification_id": 42,
                "title": "System maintenance",
                "content": "The service restarts at 22:00 UTC.",
                "created_at": "2025-01-15T10:30:00Z",
                "sender_id": 1,
                "sender_name": "admin",
                "recipient_id": None,
                "read": False,
            }
        },
    )

    notification_id: int = Field(..., description="Stable notification ID")
    title: str = Field(..., description="Notification title")
    content: str = Field(..., description="Notification body")
    created_at: datetime = Field(..., description="Creation timestamp")
    sender_id: int = Field(..., description="Admin account that authored it")
    sender_name: str | None = Field(default=None, description="Sender username")
    recipient_id: int | None = Field(default=None, description="Target user; null for broadcast")
    read: bool = Field(default=False, description="Read flag")

    @property
    def is_broadcast(self) -> bool:
        return self.recipient_id is None

    @classmethod
    def from_record(cls, record: Any) -> NotificationInfo:
        """Build from an asyncpg record or mapping."""
        return cls(
            notification_id=record["notification_id"],
            title=record["title"],
            content=record["content"],
            created_at=record["created_at"],
            sender_id=record["sender_id"],
            sender_name=record.get("sender_name"),
            recipient_id=record["recipient_id"],
            read=record["read"],
        )


class NotificationCreateRequest(BaseModel):
    """Admin request to author a notification."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "title": "System maintenance",
                "content": "The service restarts at 22:00 UTC.",
                "sender_id": 1,
                "recipient_id": None,
            }
        },
    )

    title: str = Field(..., min_length=1, max_length=200, description="Notification title")
    content: str = Field(..., min_length=1, description="Notification body")
    sender_id: int | None = Field(default=None, description="Must be the caller's user ID when given")
    recipient_id: int | None = Field(default=None, description="Target user; omit to broadcast")


class NotificationListResponse(BaseModel):
    """Notifications visible to the caller, newest first."""

    notifications: list[NotificationInfo] = Field(default_factory=list)
    unread_count: int = Field(default=0, ge=0, description="Unread rows in the list")


class NotificationResponse(BaseModel):
    """Single notification plus a human-readable message."""

    message: str
    notification: NotificationInfo


class NotificationDeletedResponse(BaseModel):
    message: str
    notification_id: int


class MarkAllReadResponse(BaseModel):
    message: str
    updated: int = Field(..., ge=0, description="Rows marked read")
