"""
API v1 Router - Aggregates all v1 endpoints.

Usage in main.py:
    from api.routes.v1 import router as v1_router
    app.include_router(v1_router, prefix="/api/v1")
"""

from fastapi import APIRouter

from api.routes.v1 import admin, auth, health, notifications, stream

# Create the v1 API router
router = APIRouter()

# Health endpoints (no auth required)
router.include_router(
    health.router,
    tags=["Health"],
)

# Authentication endpoints
router.include_router(
    auth.router,
    prefix="/auth",
    tags=["Authentication"],
)

# Server-Sent Events push streams
router.include_router(
    stream.router,
    prefix="/stream",
    tags=["Streams"],
)

# Per-user notification inbox
router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["Notifications"],
)

# Admin console
router.include_router(
    admin.router,
    prefix="/admin",
    tags=["Admin"],
)

__all__ = ["router"]
