"""
Admin console API schemas.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class OnlineUsersResponse(BaseModel):
    """Users considered online right now."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"onlineUserIds": [3, 7, 9], "count": 3}},
    )

    online_user_ids: list[int] = Field(default_factory=list, alias="onlineUserIds")
    count: int = Field(default=0, ge=0)


class HeartbeatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(..., alias="userId", description="Account reporting activity")


class RoleCount(BaseModel):
    role: str
    count: int = Field(..., ge=0)


class AdminStats(BaseModel):
    """Aggregate counts for the admin dashboard."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "total_users": 120,
                "admin_count": 2,
                "users_by_role": [{"role": "admin", "count": 2}, {"role": "user", "count": 118}],
                "total_notifications": 40,
                "unread_notifications": 12,
                "new_users_7d": 5,
                "active_users_7d": 64,
                "new_notifications_7d": 6,
            }
        }
    )

    total_users: int = Field(default=0, ge=0)
    admin_count: int = Field(default=0, ge=0)
    users_by_role: list[RoleCount] = Field(default_factory=list)
    total_notifications: int = Field(default=0, ge=0)
    unread_notifications: int = Field(default=0, ge=0)
    new_users_7d: int = Field(default=0, ge=0)
    active_users_7d: int = Field(default=0, ge=0)
    new_notifications_7d: int = Field(default=0, ge=0)


class CacheInvalidatedResponse(BaseModel):
    message: str
    key: str
