from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.dependencies import get_session_guard
from api.middleware.exception_handlers import AuthenticationError, ForbiddenError
from api.middleware.request_context import update_request_context
from api.services.session_guard import SessionGuard
from core.constants import ADMIN_ROLE
from models.error_models import ErrorCode
from models.schemas.auth import UserInfo

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    guard: Annotated[SessionGuard, Depends(get_session_guard)],
    user_id: Annotated[int | None, Header(alias="X-User-Id")] = None,
) -> UserInfo:
    """Authenticate REST requests by user ID header plus bearer session token."""
    if credentials is None or user_id is None:
        raise AuthenticationError(
            message="Authentication required",
            code=ErrorCode.AUTH_REQUIRED,
        )

    user = await guard.validate(user_id, credentials.credentials)
    update_request_context(user_id=user.user_id)
    return user


async def get_current_admin(
    user: Annotated[UserInfo, Depends(get_current_user)],
) -> UserInfo:
    """Require an authenticated admin."""
    if user.role != ADMIN_ROLE:
        raise ForbiddenError("Administrator role required")
    return user


CurrentUser = Annotated[UserInfo, Depends(get_current_user)]
CurrentAdmin = Annotated[UserInfo, Depends(get_current_admin)]
