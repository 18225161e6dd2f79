"""
Health check endpoints (v1).

Provides health, readiness, and liveness probes, including push channel
and cache statistics.
"""

from __future__ import annotations

import time

from datetime import UTC, datetime

import asyncpg

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.dependencies import DB, AppSettings, Cache
from models.schemas.health import (
    ChannelHealth,
    DatabaseHealth,
    HealthResponse,
    LivenessResponse,
    ReadinessResponse,
)
from utils.db_utils import check_pool_health

router = APIRouter()


def _channel_health(request: Request) -> list[ChannelHealth]:
    registries = [request.app.state.session_registry, request.app.state.notification_registry]
    return [ChannelHealth(**registry.get_stats()) for registry in registries if registry is not None]


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Comprehensive health check with database, push channel and cache status.",
    tags=["Health"],
)
async def health_check(db: DB, cache: Cache, settings: AppSettings, request: Request) -> HealthResponse:
    """Comprehensive health check endpoint."""
    db_health_data = await check_pool_health(db)
    channels = _channel_health(request)

    db_healthy = db_health_data.get("healthy", False)
    channels_healthy = bool(channels) and not any(c.shutting_down for c in channels)

    if db_healthy and channels_healthy:
        status = "healthy"
    elif db_healthy or channels_healthy:
        status = "degraded"
    else:
        status = "unhealthy"

    started_at: float = getattr(request.app.state, "started_at", time.time())

    return HealthResponse(
        status=status,
        version=settings.app_version,
        uptime_seconds=round(time.time() - started_at, 1),
        startup_time=datetime.fromtimestamp(started_at, UTC).isoformat(),
        database=DatabaseHealth(
            healthy=db_healthy,
            pool_size=db_health_data.get("pool_size", 0),
            pool_free=db_health_data.get("free_connections", 0),
            pool_used=db_health_data.get("used_connections", 0),
        ),
        channels=channels,
        cache=cache.stats(),
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    description="Kubernetes-style readiness probe for load balancer integration.",
    responses={
        200: {"content": {"application/json": {"example": {"ready": True}}}},
        503: {"content": {"application/json": {"example": {"ready": False, "error": "Database unavailable"}}}},
    },
    tags=["Health"],
)
async def readiness_check(db: DB) -> ReadinessResponse | JSONResponse:
    """Kubernetes-style readiness probe."""
    try:
        async with db.acquire(timeout=5.0) as conn:
            await conn.fetchval("SELECT 1")
    except (OSError, TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError):
        return JSONResponse(status_code=503, content={"ready": False, "error": "Database unavailable"})
    return ReadinessResponse(ready=True)


@router.get(
    "/health/live",
    response_model=LivenessResponse,
    summary="Liveness probe",
    description="Kubernetes-style liveness probe to confirm process is running.",
    tags=["Health"],
)
async def liveness_check() -> LivenessResponse:
    """Kubernetes-style liveness probe."""
    return LivenessResponse(alive=True)
