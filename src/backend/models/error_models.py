"""
Error envelope and error codes for Push Relay API.

Every error response has the shape::

    {
        "error": {"code": "SES_4004", "message": "...", "request_id": "...", ...},
        "message": "...",
        ...extra top-level fields
    }

``message`` is repeated at the top level because browser clients read it
directly; ``extra`` carries fields such as ``requireForceLogin`` on a login
conflict.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Error codes; the prefix names the category."""

    # Authentication (AUTH_1xxx)
    AUTH_REQUIRED = "AUTH_1001"
    AUTH_INSUFFICIENT_PERMISSIONS = "AUTH_1004"
    AUTH_INVALID_CREDENTIALS = "AUTH_1006"

    # Request validation (VAL_2xxx)
    VALIDATION_ERROR = "VAL_2001"
    VALIDATION_MISSING_FIELD = "VAL_2002"

    # Resources (RES_3xxx)
    RESOURCE_NOT_FOUND = "RES_3001"
    RESOURCE_CONFLICT = "RES_3003"

    # Sessions (SES_4xxx)
    SESSION_INVALID = "SES_4003"
    SESSION_CONFLICT = "SES_4004"

    # Notifications (NOT_5xxx)
    NOTIFICATION_NOT_FOUND = "NOT_5001"

    # Push transport (PUSH_6xxx); internal, never sent to a client
    PUSH_TRANSPORT_FAILED = "PUSH_6001"

    # Backing store (DB_8xxx)
    DATABASE_ERROR = "DB_8001"
    DATABASE_CONNECTION_FAILED = "DB_8002"

    # Internal (INT_9xxx)
    INTERNAL_ERROR = "INT_9001"
    SERVICE_SHUTTING_DOWN = "INT_9003"
    INTERNAL_UNEXPECTED = "INT_9999"

    @property
    def category(self) -> str:
        return self.value.split("_", 1)[0]


class ErrorDetail(BaseModel):
    """One field-level problem, e.g. a failed body validation."""

    field: str | None = None
    message: str
    code: str | None = None


class ErrorResponse(BaseModel):
    code: ErrorCode
    message: str
    request_id: str | None = None
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    details: list[ErrorDetail] | None = None
    path: str | None = None
    debug: dict[str, Any] | None = Field(default=None, exclude=True)
    extra: dict[str, Any] | None = Field(default=None, exclude=True)

    def to_dict(self, include_debug: bool = False) -> dict[str, Any]:
        """Render the response body; ``debug`` is only added when asked for."""
        error = self.model_dump(exclude_none=True)
        if include_debug and self.debug:
            error["debug"] = self.debug
        return {"error": error, "message": self.message, **(self.extra or {})}


# Default HTTP status per category
_CATEGORY_STATUS: dict[str, int] = {
    "AUTH": 401,
    "VAL": 422,
    "RES": 404,
    "SES": 401,
    "NOT": 404,
    "PUSH": 500,
    "DB": 500,
    "INT": 500,
}

# Codes whose status differs from their category's
_STATUS_OVERRIDES: dict[ErrorCode, int] = {
    ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS: 403,
    ErrorCode.VALIDATION_MISSING_FIELD: 400,
    ErrorCode.RESOURCE_CONFLICT: 409,
    ErrorCode.SESSION_CONFLICT: 409,
    ErrorCode.SERVICE_SHUTTING_DOWN: 503,
}

ERROR_CODE_TO_STATUS: dict[ErrorCode, int] = {
    code: _STATUS_OVERRIDES.get(code, _CATEGORY_STATUS[code.category]) for code in ErrorCode
}


def get_status_code(error_code: ErrorCode) -> int:
    return ERROR_CODE_TO_STATUS.get(error_code, 500)


__all__ = [
    "ERROR_CODE_TO_STATUS",
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "get_status_code",
]
