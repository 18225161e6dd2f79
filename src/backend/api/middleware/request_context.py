"""
Request context for Push Relay API.

A ContextVar carries the request ID, client details and, once known, the
authenticated user and push channel. The logger reads it so every line
written while serving a request or a push stream can be correlated.

REST requests get their context from ``RequestContextMiddleware``. Push
streams outlive the middleware's call, so the stream generator installs its
own with ``create_stream_context``.
"""

from __future__ import annotations

import secrets
import time

from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

_request_context: ContextVar[RequestContext | None] = ContextVar("request_context", default=None)

REQUEST_ID_PREFIX = "req_"
STREAM_ID_PREFIX = "sse_"

# Optional fields copied into log records when set
_OPTIONAL_LOG_FIELDS = ("client_ip", "user_id", "channel")


@dataclass
class RequestContext:
    request_id: str
    start_time: float = field(default_factory=time.monotonic)
    path: str = ""
    method: str = ""
    client_ip: str | None = None
    user_agent: str | None = None
    user_id: int | None = None
    channel: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.start_time) * 1000

    def to_log_context(self) -> dict[str, Any]:
        """Fields merged into the ``extra`` of each log call."""
        ctx: dict[str, Any] = {
            "request_id": self.request_id,
            "path": self.path,
            "method": self.method,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }
        for name in _OPTIONAL_LOG_FIELDS:
            value = getattr(self, name)
            if value is not None and value != "":
                ctx[name] = value
        return ctx


def generate_request_id(prefix: str = REQUEST_ID_PREFIX) -> str:
    """Prefix plus 16 hex characters, e.g. ``sse_9f2c41d07a3be615``."""
    return f"{prefix}{secrets.token_hex(8)}"


def get_request_context() -> RequestContext | None:
    """Current context, or None outside a request or stream."""
    return _request_context.get()


def get_request_id() -> str | None:
    ctx = _request_context.get()
    return ctx.request_id if ctx else None


def set_request_context(context: RequestContext) -> None:
    _request_context.set(context)


def clear_request_context() -> None:
    _request_context.set(None)


def update_request_context(**kwargs: Any) -> None:
    """Attach fields learned mid-request, such as the authenticated user.

    Unknown names land in ``extra``. Does nothing outside a request.
    """
    ctx = _request_context.get()
    if ctx is None:
        return
    for key, value in kwargs.items():
        if key != "extra" and hasattr(ctx, key):
            setattr(ctx, key, value)
        else:
            ctx.extra[key] = value


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Left-most entry is the originating client
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Install a RequestContext per request and echo its ID and timing in headers."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        context = RequestContext(
            request_id=request.headers.get("X-Request-ID") or generate_request_id(),
            path=request.url.path,
            method=request.method,
            client_ip=_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        set_request_context(context)

        try:
            response = await call_next(request)
        finally:
            clear_request_context()

        response.headers["X-Request-ID"] = context.request_id
        response.headers["X-Response-Time"] = f"{context.elapsed_ms:.2f}ms"
        return response


def create_stream_context(
    channel: str,
    user_id: int,
    path: str,
    client_ip: str | None = None,
) -> RequestContext:
    """Install a per-connection context inside a push stream generator."""
    context = RequestContext(
        request_id=generate_request_id(STREAM_ID_PREFIX),
        path=path,
        method="SSE",
        client_ip=client_ip,
        user_id=user_id,
        channel=channel,
    )
    set_request_context(context)
    return context


__all__ = [
    "REQUEST_ID_PREFIX",
    "STREAM_ID_PREFIX",
    "RequestContext",
    "RequestContextMiddleware",
    "clear_request_context",
    "create_stream_context",
    "generate_request_id",
    "get_request_context",
    "get_request_id",
    "set_request_context",
    "update_request_context",
]
