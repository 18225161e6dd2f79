"""Single-active-session enforcement.

An account is either without a session or holds exactly one token. A login
while a token exists is rejected unless forced; a forced login first tells
the previous holder's session streams that they were signed out.
"""

from __future__ import annotations

import asyncio
import hmac
import uuid

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import bcrypt

from api.middleware.exception_handlers import (
    ConflictingSessionError,
    InvalidCredentialsError,
    InvalidSessionError,
)
from api.realtime.registry import ConnectionRegistry
from api.services.account_store import AccountStore
from models.event_models import SessionInvalidatedEvent
from models.schemas.auth import UserInfo
from utils.logger import logger
from utils.metrics import login_attempts_total


@dataclass(frozen=True)
class LoginResult:
    token: str
    user: UserInfo
    replaced_session: bool = False


def _password_matches(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def _tokens_equal(presented: str | None, stored: str | None) -> bool:
    if not presented or not stored:
        return False
    return hmac.compare_digest(presented.encode(), stored.encode())


class _AccountLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class SessionGuard:
    """Login, logout and token validation backed by the accounts table."""

    def __init__(self, accounts: AccountStore, session_registry: ConnectionRegistry):
        self.accounts = accounts
        self.session_registry = session_registry
        # Only accounts with a session change in progress have an entry
        self._account_locks: dict[int, _AccountLock] = {}

    @asynccontextmanager
    async def _account_lock(self, user_id: int) -> AsyncIterator[None]:
        """Serialize session changes for one account within this process."""
        entry = self._account_locks.get(user_id)
        if entry is None:
            entry = self._account_locks[user_id] = _AccountLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._account_locks[user_id]

    async def login(
        self,
        username: str,
        password: str,
        force_login: bool = False,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        """Verify credentials and issue a new session token.

        Raises:
            InvalidCredentialsError: Unknown username or wrong password
            ConflictingSessionError: A session exists and force_login is False
        """
        account = await self.accounts.get_by_username(username)
        if account is None:
            await self.accounts.record_login(
                None, username, success=False, failure_reason="User not found",
                ip_address=client_ip, user_agent=user_agent,
            )
            login_attempts_total.labels(outcome="invalid").inc()
            raise InvalidCredentialsError()

        user_id = account["user_id"]
        if not await asyncio.to_thread(_password_matches, password, account["password_hash"]):
            await self.accounts.record_login(
                user_id, username, success=False, failure_reason="Invalid password",
                ip_address=client_ip, user_agent=user_agent,
            )
            login_attempts_total.labels(outcome="invalid").inc()
            raise InvalidCredentialsError()

        async with self._account_lock(user_id):
            # Re-read under the lock; a competing login or logout may have run
            account = await self.accounts.get_by_username(username)
            if account is None or account["user_id"] != user_id:
                login_attempts_total.labels(outcome="invalid").inc()
                raise InvalidCredentialsError()

            had_session = bool(account["session_token"])
            if had_session and not force_login:
                login_attempts_total.labels(outcome="conflict").inc()
                logger.warning(f"Login conflict for user {user_id}: session active elsewhere", user_id=user_id)
                raise ConflictingSessionError(user_id)

            if had_session:
                delivered = await self.session_registry.send(user_id, SessionInvalidatedEvent())
                logger.info(
                    f"Forced login for user {user_id}: invalidated {delivered} session stream(s)",
                    user_id=user_id,
                )

            token = str(uuid.uuid4())
            await self.accounts.set_session_token(user_id, token)
            await self.accounts.record_login(
                user_id, username, success=True, ip_address=client_ip, user_agent=user_agent,
            )

        login_attempts_total.labels(outcome="forced" if had_session else "success").inc()
        logger.info(f"User {user_id} logged in", user_id=user_id)
        return LoginResult(
            token=token,
            user=UserInfo(user_id=user_id, username=account["username"], role=account["role"]),
            replaced_session=had_session,
        )

    async def logout(self, user_id: int, token: str) -> None:
        """Clear the account's session token if it still matches token.

        Other live streams of the user are not notified.

        Raises:
            InvalidSessionError: The token is not the account's current one,
                including when a newer login replaced it during the call
        """
        async with self._account_lock(user_id):
            await self.validate(user_id, token)
            # Compare-and-clear; a login from another process may have won
            if not await self.accounts.clear_session_token(user_id, token):
                raise InvalidSessionError()
        logger.info(f"User {user_id} logged out", user_id=user_id)

    async def validate(self, user_id: int, token: str) -> UserInfo:
        """Return the account if token is its current session token.

        Raises:
            InvalidSessionError: Unknown account or stale token
        """
        account = await self.accounts.get_by_id(user_id)
        if account is None or not _tokens_equal(token, account["session_token"]):
            raise InvalidSessionError()
        return UserInfo(user_id=account["user_id"], username=account["username"], role=account["role"])
