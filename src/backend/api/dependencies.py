from __future__ import annotations

from typing import Annotated

import asyncpg

from fastapi import Depends, Request

from api.realtime.registry import ConnectionRegistry
from api.services.admin_service import AdminService
from api.services.notification_dispatcher import NotificationDispatcher
from api.services.session_guard import SessionGuard
from core.constants import Settings, get_settings
from utils.cache import TTLCache


def get_app_settings() -> Settings:
    """Provide application settings via dependency injection.

    In development with CONFIG_HOT_RELOAD=true, settings are reloaded
    on each request to pick up .env file changes without restart.

    Usage in routes:
        @router.get("/example")
        async def example(settings: AppSettings):
            return {"debug": settings.debug}
    """
    return get_settings()


async def get_db(request: Request) -> asyncpg.Pool:
    """Get database connection pool from application state."""
    return request.app.state.db_pool


def get_session_registry(request: Request) -> ConnectionRegistry:
    """Registry of session-channel streams."""
    return request.app.state.session_registry


def get_notification_registry(request: Request) -> ConnectionRegistry:
    """Registry of notification-channel streams."""
    return request.app.state.notification_registry


def get_cache(request: Request) -> TTLCache:
    """Read-through cache for the admin views."""
    return request.app.state.cache


def get_session_guard(request: Request) -> SessionGuard:
    """Process-wide session guard (holds the per-account login locks)."""
    return request.app.state.session_guard


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_admin_service(request: Request) -> AdminService:
    return request.app.state.admin_service


# Type aliases for cleaner route signatures
DB = Annotated[asyncpg.Pool, Depends(get_db)]
SessionRegistry = Annotated[ConnectionRegistry, Depends(get_session_registry)]
NotificationRegistry = Annotated[ConnectionRegistry, Depends(get_notification_registry)]
Cache = Annotated[TTLCache, Depends(get_cache)]
Guard = Annotated[SessionGuard, Depends(get_session_guard)]
Dispatcher = Annotated[NotificationDispatcher, Depends(get_dispatcher)]
Admin = Annotated[AdminService, Depends(get_admin_service)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
