"""
Authentication-related API schemas.

Provides request/response models for login, logout and session checks
with OpenAPI documentation. Field names on the wire are camelCase.
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    """Login credentials."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "username": "alice",
                "password": "secure_password_123",
                "forceLogin": False,
            }
        },
    )

    username: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Account username",
        json_schema_extra={"example": "alice"},
    )
    password: str = Field(
        ...,
        min_length=1,
        max_length=128,
        validation_alias=AliasChoices("password", "passwordHash"),
        description="Account password",
    )
    force_login: bool = Field(
        default=False,
        alias="forceLogin",
        description="Take over an existing session on another device",
    )


class SessionCredentials(BaseModel):
    """User ID plus the session token issued at login."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "userId": 3,
                "sessionToken": "0b5e8c84-3f5c-4e5c-9a5a-2d0b8e2c4f11",
            }
        },
    )

    user_id: int = Field(..., alias="userId", description="Account ID")
    session_token: str = Field(..., alias="sessionToken", min_length=1, description="Opaque session token")


class UserInfo(BaseModel):
    """Public account information."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "userId": 3,
                "username": "alice",
                "role": "user",
            }
        },
    )

    user_id: int = Field(..., alias="userId", description="Account ID")
    username: str = Field(..., description="Account username")
    role: str = Field(..., description="Account role ('admin' or 'user')")


class LoginResponse(BaseModel):
    """Successful login."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(default="Login successful")
    token: str = Field(..., description="Opaque session token for streams and REST calls")
    user: UserInfo


class ConflictResponse(BaseModel):
    """Body of a 409 when the account is logged in elsewhere."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    require_force_login: bool = Field(default=True, alias="requireForceLogin")
    user_id: int = Field(..., alias="userId")


class SessionCheckResponse(BaseModel):
    valid: bool = Field(..., description="Token is the account's current session")


class MessageResponse(BaseModel):
    message: str
