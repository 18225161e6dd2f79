"""
Health check API schemas.

Provides response models for health, readiness, and liveness probes.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class DatabaseHealth(BaseModel):
    """Database connection pool health."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "healthy": True,
                "pool_size": 10,
                "pool_free": 8,
                "pool_used": 2,
            }
        }
    )

    healthy: bool = Field(..., description="Database is accessible")
    pool_size: int = Field(default=0, ge=0, description="Total pool size")
    pool_free: int = Field(default=0, ge=0, description="Available connections")
    pool_used: int = Field(default=0, ge=0, description="Active connections")
    error: str | None = Field(default=None, description="Error if unhealthy")


class ChannelHealth(BaseModel):
    """Connection registry health for one push channel."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "channel": "notifications",
                "connections": 5,
                "users": 3,
                "sweeper_running": True,
                "shutting_down": False,
            }
        }
    )

    channel: str = Field(..., description="Channel name")
    connections: int = Field(default=0, ge=0, description="Registered connections")
    users: int = Field(default=0, ge=0, description="Users with at least one connection")
    sweeper_running: bool = Field(default=False, description="Liveness sweep task is running")
    shutting_down: bool = Field(default=False, description="Shutdown in progress")


class HealthResponse(BaseModel):
    """Comprehensive health check response."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "version": "1.0.0",
                "uptime_seconds": 3600.5,
                "startup_time": "2025-01-15T10:00:00Z",
                "database": {"healthy": True, "pool_size": 10, "pool_free": 8, "pool_used": 2},
                "channels": [{"channel": "session", "connections": 2, "users": 2}],
                "cache": {"name": "admin", "size": 2, "hit_rate": "75.0%"},
            }
        }
    )

    status: Literal["healthy", "degraded", "unhealthy"] = Field(..., description="Overall system health status")
    version: str = Field(..., description="Application version")
    uptime_seconds: float = Field(..., description="Seconds since startup")
    startup_time: str = Field(..., description="Startup timestamp (ISO 8601)")
    database: DatabaseHealth = Field(..., description="Database health")
    channels: list[ChannelHealth] = Field(default_factory=list, description="Push channel health")
    cache: dict[str, Any] = Field(default_factory=dict, description="Read-through cache statistics")


class ReadinessResponse(BaseModel):
    """Kubernetes-style readiness probe response."""

    ready: bool = Field(..., description="Service is ready to accept traffic")
    error: str | None = Field(default=None, description="Error message if not ready")


class LivenessResponse(BaseModel):
    """Kubernetes-style liveness probe response."""

    alive: bool = Field(default=True, description="Process is running")
