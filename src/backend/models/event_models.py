"""
Push event models for the session and notification channels.

Every frame on a push stream is one of these variants, tagged by ``type``.
Events are serialized once with ``to_frame()`` and parsed on the client
side with ``parse_event()``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from models.schemas.notifications import NotificationInfo


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


class _PushEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    def to_frame(self) -> str:
        """Serialize to the JSON text carried in one SSE ``data:`` field."""
        return self.model_dump_json(exclude_none=True)


class ConnectedEvent(_PushEvent):
    """First frame on every stream."""

    type: Literal["connected"] = "connected"
    timestamp: str = Field(default_factory=_utc_now)


class NewNotificationEvent(_PushEvent):
    type: Literal["new_notification"] = "new_notification"
    notification: NotificationInfo


class NotificationDeletedEvent(_PushEvent):
    type: Literal["notification_deleted"] = "notification_deleted"
    notification_id: int


class SessionInvalidatedEvent(_PushEvent):
    """Sent to the previous holder of a session taken over by a forced login."""

    type: Literal["session_invalidated"] = "session_invalidated"
    message: str = "Your account has been logged in on another device"


PushEvent = Annotated[
    ConnectedEvent | NewNotificationEvent | NotificationDeletedEvent | SessionInvalidatedEvent,
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[PushEvent] = TypeAdapter(PushEvent)


def parse_event(data: str | bytes) -> PushEvent:
    """Parse one frame payload into its typed event.

    Raises:
        pydantic.ValidationError: If the payload is not a known event.
    """
    return _event_adapter.validate_json(data)


__all__ = [
    "ConnectedEvent",
    "NewNotificationEvent",
    "NotificationDeletedEvent",
    "PushEvent",
    "SessionInvalidatedEvent",
    "parse_event",
]
