"""
Authentication endpoints (v1).

Provides login, logout and session check endpoints. Login enforces one
active session per account.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.dependencies import Guard
from api.middleware.exception_handlers import InvalidSessionError
from api.middleware.request_context import get_request_context
from models.schemas.auth import (
    ConflictResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    SessionCheckResponse,
    SessionCredentials,
)

router = APIRouter()


def _client_details(request: Request) -> tuple[str | None, str | None]:
    ctx = get_request_context()
    if ctx is not None:
        return ctx.client_ip, ctx.user_agent
    return (request.client.host if request.client else None), request.headers.get("User-Agent")


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login",
    description=(
        "Authenticate with username and password. If the account is already logged in "
        "elsewhere the request fails with 409 unless `forceLogin` is true, in which case "
        "the previous device is signed out over its session stream."
    ),
    responses={
        200: {
            "description": "Login successful",
            "content": {
                "application/json": {
                    "example": {
                        "message": "Login successful",
                        "token": "0b5e8c84-3f5c-4e5c-9a5a-2d0b8e2c4f11",
                        "user": {"userId": 3, "username": "alice", "role": "user"},
                    }
                }
            },
        },
        401: {"description": "Invalid credentials"},
        409: {"model": ConflictResponse, "description": "Account logged in on another device"},
    },
)
async def login(body: LoginRequest, request: Request, guard: Guard) -> LoginResponse:
    """Login and issue a session token."""
    client_ip, user_agent = _client_details(request)
    result = await guard.login(
        body.username,
        body.password,
        force_login=body.force_login,
        client_ip=client_ip,
        user_agent=user_agent,
    )
    return LoginResponse(token=result.token, user=result.user)


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout",
    description="Clear the account's session token. Other open streams are not notified.",
    responses={
        200: {"description": "Logged out", "content": {"application/json": {"example": {"message": "Logout successful"}}}},
        401: {"description": "Invalid session"},
    },
)
async def logout(body: SessionCredentials, guard: Guard) -> MessageResponse:
    """Logout the current session."""
    await guard.logout(body.user_id, body.session_token)
    return MessageResponse(message="Logout successful")


@router.post(
    "/check",
    response_model=SessionCheckResponse,
    summary="Check session",
    description="Report whether a session token is the account's current one.",
    responses={
        200: {"content": {"application/json": {"example": {"valid": True}}}},
        401: {"content": {"application/json": {"example": {"valid": False}}}},
    },
)
async def check_session(body: SessionCredentials, guard: Guard) -> SessionCheckResponse | JSONResponse:
    """Validate a session token."""
    try:
        await guard.validate(body.user_id, body.session_token)
    except InvalidSessionError:
        return JSONResponse(status_code=401, content={"valid": False})
    return SessionCheckResponse(valid=True)
