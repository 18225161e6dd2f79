"""
Global exception handlers for Push Relay API.

Provides centralized error handling with consistent response formatting,
proper logging, and request context integration.
"""

from __future__ import annotations

import traceback

from typing import Any

import asyncpg

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from api.middleware.request_context import get_request_context, get_request_id
from core.constants import get_settings
from models.error_models import (
    ErrorCode,
    ErrorDetail,
    ErrorResponse,
    get_status_code,
)
from utils.logger import logger


class AppException(Exception):
    """Base application exception with error code support.

    Use this for business logic errors that should return a specific
    error code and message to the client.

    Example:
        raise AppException(
            code=ErrorCode.NOTIFICATION_NOT_FOUND,
            message="Notification not found",
            details={"notification_id": notification_id}
        )
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
        extra: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        self.cause = cause
        self.extra = extra
        super().__init__(message)


class AuthenticationError(AppException):
    """Authentication-related errors."""

    def __init__(
        self,
        message: str = "Authentication required",
        code: ErrorCode = ErrorCode.AUTH_REQUIRED,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, details=details)


class InvalidCredentialsError(AuthenticationError):
    """Unknown username or wrong password."""

    def __init__(self, message: str = "Invalid username or password"):
        super().__init__(message=message, code=ErrorCode.AUTH_INVALID_CREDENTIALS)


class InvalidSessionError(AuthenticationError):
    """Presented session token is not the account's current one."""

    def __init__(self, message: str = "Invalid session"):
        super().__init__(message=message, code=ErrorCode.SESSION_INVALID)


class ConflictingSessionError(AppException):
    """Account already holds an active session and the login was not forced.

    Carries the user id so the client can retry with ``forceLogin``.
    """

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(
            code=ErrorCode.SESSION_CONFLICT,
            message="Account is already logged in on another device",
            extra={"requireForceLogin": True, "userId": user_id},
        )


class ForbiddenError(AppException):
    """Caller lacks permission for the requested operation."""

    def __init__(self, message: str = "Permission denied", details: dict[str, Any] | None = None):
        super().__init__(code=ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS, message=message, details=details)


class ResourceNotFoundError(AppException):
    """Resource not found errors."""

    def __init__(
        self,
        resource: str,
        resource_id: str | int | None = None,
        code: ErrorCode = ErrorCode.RESOURCE_NOT_FOUND,
    ):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} '{resource_id}' not found"
        super().__init__(code=code, message=message, details={"resource": resource, "id": resource_id})


class NotificationNotFoundError(ResourceNotFoundError):
    """Notification missing or not visible to the caller."""

    def __init__(self, notification_id: int):
        super().__init__(resource="Notification", resource_id=notification_id, code=ErrorCode.NOTIFICATION_NOT_FOUND)


class AccountNotFoundError(ResourceNotFoundError):
    """Referenced account does not exist."""

    def __init__(self, user_id: int):
        super().__init__(resource="User", resource_id=user_id)


class DatabaseError(AppException):
    """Database-related errors."""

    def __init__(
        self,
        message: str = "Database error",
        code: ErrorCode = ErrorCode.DATABASE_ERROR,
        cause: Exception | None = None,
    ):
        super().__init__(code=code, message=message, cause=cause)


# HTTPException statuses mapped onto the closest error code
_HTTP_STATUS_CODES: dict[int, ErrorCode] = {
    400: ErrorCode.VALIDATION_MISSING_FIELD,
    401: ErrorCode.AUTH_REQUIRED,
    403: ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    409: ErrorCode.RESOURCE_CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
}


def _log_error(error: Exception, code: ErrorCode, status_code: int, request: Request) -> None:
    """Warn on 4xx, log 5xx with traceback; both carry the request context."""
    ctx = get_request_context()
    log_context = ctx.to_log_context() if ctx else {}
    log_context.setdefault("path", request.url.path)
    log_context["error_code"] = code.value
    log_context["status_code"] = status_code

    if status_code >= 500:
        logger.error(f"Server error: {code.value} - {error}", exc_info=True, **log_context)
    else:
        logger.warning(f"Client error: {code.value} - {error}", **log_context)


def _error_response(
    request: Request,
    code: ErrorCode,
    message: str,
    status_code: int,
    *,
    details: list[ErrorDetail] | None = None,
    debug_info: dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the error envelope; debug fields are included only when DEBUG is on."""
    body = ErrorResponse(
        code=code,
        message=message,
        request_id=get_request_id(),
        path=request.url.path,
        details=details,
        debug=debug_info,
        extra=extra,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.to_dict(include_debug=get_settings().debug),
        headers=headers,
    )


def _validation_details(errors: Any) -> list[ErrorDetail]:
    return [
        ErrorDetail(
            field=".".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            code=error["type"],
        )
        for error in errors
    ]


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    status_code = get_status_code(exc.code)
    _log_error(exc, exc.code, status_code, request)

    details = [ErrorDetail(field=k, message=str(v)) for k, v in exc.details.items()] if exc.details else None
    return _error_response(
        request,
        exc.code,
        exc.message,
        status_code,
        details=details,
        debug_info={
            "exception_type": type(exc).__name__,
            "cause": str(exc.cause) if exc.cause else None,
        },
        extra=exc.extra,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Wrap FastAPI/Starlette HTTP errors (including HTTPBearer's 401/403) in the envelope."""
    code = _HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    _log_error(exc, code, exc.status_code, request)

    return _error_response(
        request,
        code,
        exc.detail if isinstance(exc.detail, str) else str(exc.detail),
        exc.status_code,
        debug_info={"original_status": exc.status_code},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body, query or header failed validation."""
    _log_error(exc, ErrorCode.VALIDATION_ERROR, 422, request)
    return _error_response(
        request,
        ErrorCode.VALIDATION_ERROR,
        "Request validation failed",
        422,
        details=_validation_details(exc.errors()),
    )


async def pydantic_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """A model built inside a handler failed validation."""
    _log_error(exc, ErrorCode.VALIDATION_ERROR, 422, request)
    return _error_response(
        request,
        ErrorCode.VALIDATION_ERROR,
        "Data validation failed",
        422,
        details=_validation_details(exc.errors()),
    )


async def asyncpg_exception_handler(request: Request, exc: asyncpg.PostgresError) -> JSONResponse:
    """Backing store failure; the query text never reaches the client."""
    _log_error(exc, ErrorCode.DATABASE_ERROR, 500, request)
    return _error_response(
        request,
        ErrorCode.DATABASE_ERROR,
        "Database operation failed",
        500,
        debug_info={
            "pg_error_code": getattr(exc, "sqlstate", None),
            "pg_error_class": type(exc).__name__,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True,
        request_id=get_request_id(),
        path=request.url.path,
    )
    return _error_response(
        request,
        ErrorCode.INTERNAL_UNEXPECTED,
        "An unexpected error occurred",
        500,
        debug_info={
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
            "traceback": traceback.format_exc(),
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""
    # Starlette's signature expects Exception; covariant handlers work at runtime
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ValidationError, pydantic_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(asyncpg.PostgresError, asyncpg_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)


__all__ = [
    "AccountNotFoundError",
    "AppException",
    "AuthenticationError",
    "ConflictingSessionError",
    "DatabaseError",
    "ForbiddenError",
    "InvalidCredentialsError",
    "InvalidSessionError",
    "NotificationNotFoundError",
    "ResourceNotFoundError",
    "app_exception_handler",
    "asyncpg_exception_handler",
    "generic_exception_handler",
    "http_exception_handler",
    "pydantic_exception_handler",
    "register_exception_handlers",
    "validation_exception_handler",
]
