from __future__ import annotations

import asyncio
import time

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware.exception_handlers import register_exception_handlers
from api.middleware.request_context import RequestContextMiddleware
from api.realtime.registry import ConnectionRegistry
from api.routes.v1 import router as v1_router
from api.services.account_store import AccountStore
from api.services.admin_service import AdminService
from api.services.notification_dispatcher import NotificationDispatcher
from api.services.notification_store import NotificationStore
from api.services.session_guard import SessionGuard
from core.constants import NOTIFICATION_CHANNEL, SESSION_CHANNEL, get_settings
from utils.cache import TTLCache
from utils.db_utils import check_pool_health, create_database_pool, graceful_pool_close
from utils.logger import configure_uvicorn_logging, logger

# Settings are loaded via Pydantic Settings with environment-specific file support
# (.env, .env.{APP_ENV}, .env.local)
settings = get_settings()

if settings.debug:
    from core.constants import _get_env_files

    logger.info(f"Env files: {[f.name for f in _get_env_files()]}")
    logger.info(
        f"Settings: app_env={settings.app_env}, "
        f"db_pool=[{settings.db_pool_min_size},{settings.db_pool_max_size}], "
        f"liveness=[idle={settings.liveness_idle_timeout}s, sweep={settings.liveness_sweep_interval}s]"
    )

# Configure uvicorn logging at module level to ensure workers use it
configure_uvicorn_logging()


def _create_registry(channel: str) -> ConnectionRegistry:
    return ConnectionRegistry(
        channel,
        idle_timeout_seconds=settings.liveness_idle_timeout,
        sweep_interval_seconds=settings.liveness_sweep_interval,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown with graceful handling."""
    shutdown_event = asyncio.Event()
    app.state.shutdown_event = shutdown_event
    app.state.started_at = time.time()

    # Create database pool with production configuration
    app.state.db_pool = await create_database_pool(
        dsn=settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        command_timeout=settings.db_command_timeout,
        connection_timeout=settings.db_connection_timeout,
        statement_cache_size=settings.db_statement_cache_size,
        max_inactive_connection_lifetime=settings.db_max_inactive_connection_lifetime,
    )

    # Verify database connectivity
    health = await check_pool_health(app.state.db_pool)
    if not health["healthy"]:
        logger.error("Database health check failed during startup")
        raise RuntimeError("Database connection failed")
    logger.info(f"Database pool healthy: {health}")

    # One registry per push channel, each with its own liveness sweeper
    app.state.session_registry = _create_registry(SESSION_CHANNEL)
    app.state.notification_registry = _create_registry(NOTIFICATION_CHANNEL)
    await app.state.session_registry.start_sweeper()
    await app.state.notification_registry.start_sweeper()

    app.state.cache = TTLCache(max_size=settings.cache_max_size, name="admin")

    accounts = AccountStore(app.state.db_pool)
    notifications = NotificationStore(app.state.db_pool)

    # Services hold per-account locks, so they are built once per process
    app.state.session_guard = SessionGuard(accounts, app.state.session_registry)
    app.state.dispatcher = NotificationDispatcher(
        notifications,
        accounts,
        app.state.notification_registry,
        app.state.cache,
        list_ttl=settings.notifications_cache_ttl,
    )
    app.state.admin_service = AdminService(
        accounts,
        notifications,
        [app.state.session_registry, app.state.notification_registry],
        app.state.cache,
        settings,
    )

    try:
        yield
    finally:
        logger.info("Initiating graceful shutdown sequence")

        # Signal shutdown to any waiting tasks
        shutdown_event.set()

        # Phase 1: Refuse new streams and close the open ones
        await app.state.session_registry.graceful_shutdown()
        await app.state.notification_registry.graceful_shutdown()

        # Phase 2: Gracefully close database pool
        await graceful_pool_close(app.state.db_pool, timeout=settings.shutdown_timeout)


app = FastAPI(
    title="Push Relay API",
    description="""
## Push Relay API

Real-time session enforcement and notification fan-out over Server-Sent Events.

### Features
- **Single active session**: A second login is refused unless forced; a forced
  login signs the previous device out over its session stream
- **Notifications**: Admin-authored broadcast or targeted notifications pushed
  to live streams and persisted for later reads
- **Admin console**: Cached online-user and dashboard statistics

### Authentication
REST endpoints take `X-User-Id` plus an `Authorization: Bearer <sessionToken>` header.
Streams take the same credentials as query parameters.
Use `/api/v1/auth/login` to obtain a session token.

### Versioning
API uses URL path versioning: `/api/v1/...`
""",
    version=settings.app_version,
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Health",
            "description": "Health check endpoints for monitoring and orchestration",
        },
        {
            "name": "Authentication",
            "description": "Login, logout and session checks",
        },
        {
            "name": "Streams",
            "description": "Server-Sent Events push channels",
        },
        {
            "name": "Notifications",
            "description": "The caller's notification inbox",
        },
        {
            "name": "Admin",
            "description": "Notification authoring, online users and statistics",
        },
    ],
    openapi_url="/api/v1/openapi.json",
    docs_url="/api/v1/docs",
    redoc_url="/api/v1/redoc",
)

# Register global exception handlers for consistent error responses
register_exception_handlers(app)

# Request context middleware (adds request ID tracking)
# Note: Middleware is executed in reverse order of registration
app.add_middleware(RequestContextMiddleware)

# CORS configuration (uses Settings for origin control)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_methods_list,
    allow_headers=settings.cors_headers_list,
)

# Routes - API v1
app.include_router(v1_router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        reload_dirs=["src"],
        log_config=None,
    )
