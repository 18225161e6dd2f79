"""
Push stream endpoints (v1).

Server-Sent Events streams for the session and notification channels.
Each stream registers one connection for its lifetime; the first frame is
always ``connected``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from fastapi import APIRouter, Query, Request
from sse_starlette.sse import EventSourceResponse

from api.dependencies import AppSettings, Guard, NotificationRegistry, SessionRegistry
from api.middleware.exception_handlers import AppException, AuthenticationError
from api.middleware.request_context import clear_request_context, create_stream_context, get_request_context
from api.realtime.connection import Connection
from api.realtime.registry import ConnectionRegistry
from models.error_models import ErrorCode
from models.event_models import ConnectedEvent

router = APIRouter()

#: Seconds between disconnect checks while a stream is idle.
_POLL_INTERVAL = 1.0


def _require_credentials(user_id: int | None, token: str | None) -> tuple[int, str]:
    if user_id is None or not token:
        raise AuthenticationError("Missing stream credentials")
    return user_id, token


async def _event_stream(
    request: Request,
    registry: ConnectionRegistry,
    connection: Connection,
) -> AsyncGenerator[dict[str, Any], None]:
    ctx = get_request_context()
    create_stream_context(
        registry.channel,
        connection.user_id,
        request.url.path,
        client_ip=ctx.client_ip if ctx else None,
    )
    try:
        yield {"data": ConnectedEvent().to_frame()}
        while True:
            if await request.is_disconnected():
                break
            frame = await connection.receive(timeout=_POLL_INTERVAL)
            if frame is None:
                if not connection.is_open:
                    break
                continue
            yield {"data": frame}
    finally:
        await registry.unregister(connection.user_id, connection)
        clear_request_context()


async def _open_stream(
    request: Request,
    registry: ConnectionRegistry,
    user_id: int,
    queue_size: int,
    ping_interval: int,
    replace_existing: bool,
) -> EventSourceResponse:
    connection = Connection(user_id, registry.channel, queue_size=queue_size)
    if replace_existing:
        accepted = await registry.replace(user_id, connection)
    else:
        accepted = await registry.register(user_id, connection)
    if not accepted:
        raise AppException(code=ErrorCode.SERVICE_SHUTTING_DOWN, message="Server is shutting down")
    return EventSourceResponse(_event_stream(request, registry, connection), ping=ping_interval)


@router.get(
    "/session",
    summary="Session stream",
    description=(
        "Server-Sent Events stream that receives `session_invalidated` when the account "
        "is taken over by a forced login elsewhere."
    ),
    responses={
        200: {"content": {"text/event-stream": {"example": 'data: {"type":"connected","timestamp":"..."}\n\n'}}},
        401: {"description": "Missing or invalid session"},
    },
)
async def session_stream(
    request: Request,
    guard: Guard,
    registry: SessionRegistry,
    settings: AppSettings,
    user_id: int | None = Query(default=None, alias="userId"),
    session_token: str | None = Query(default=None, alias="sessionToken"),
) -> EventSourceResponse:
    await guard.validate(*_require_credentials(user_id, session_token))
    return await _open_stream(
        request,
        registry,
        user_id,
        queue_size=settings.push_queue_size,
        ping_interval=settings.sse_ping_interval,
        replace_existing=False,
    )


@router.get(
    "/notifications",
    summary="Notification stream",
    description=(
        "Server-Sent Events stream of `new_notification` and `notification_deleted` events. "
        "Opening a new stream retires the user's previous notification streams."
    ),
    responses={
        200: {"content": {"text/event-stream": {"example": 'data: {"type":"connected","timestamp":"..."}\n\n'}}},
        401: {"description": "Missing or invalid session"},
    },
)
async def notification_stream(
    request: Request,
    guard: Guard,
    registry: NotificationRegistry,
    settings: AppSettings,
    user_id: int | None = Query(default=None, alias="userId"),
    token: str | None = Query(default=None, description="Session token"),
) -> EventSourceResponse:
    await guard.validate(*_require_credentials(user_id, token))
    # Opportunistic sweep in addition to the timer
    await registry.sweep()
    return await _open_stream(
        request,
        registry,
        user_id,
        queue_size=settings.push_queue_size,
        ping_interval=settings.sse_ping_interval,
        replace_existing=True,
    )

