from __future__ import annotations

from typing import Any

import asyncpg

from core.constants import ADMIN_ROLE, LOGIN_STATUS_FAILED, LOGIN_STATUS_SUCCESS
from utils.db_utils import timed_query


class AccountStore:
    """Account rows, session tokens and the login audit log in PostgreSQL."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_by_username(self, username: str) -> asyncpg.Record | None:
        async with self.pool.acquire() as conn, timed_query("select"):
            return await conn.fetchrow(
                """
                SELECT user_id, username, password_hash, role, session_token, last_login
                FROM accounts
                WHERE username = $1
                """,
                username,
            )

    async def get_by_id(self, user_id: int) -> asyncpg.Record | None:
        async with self.pool.acquire() as conn, timed_query("select"):
            return await conn.fetchrow(
                """
                SELECT user_id, username, password_hash, role, session_token, last_login
                FROM accounts
                WHERE user_id = $1
                """,
                user_id,
            )

    async def exists(self, user_id: int) -> bool:
        async with self.pool.acquire() as conn, timed_query("select"):
            found = await conn.fetchval("SELECT 1 FROM accounts WHERE user_id = $1", user_id)
        return found is not None

    async def set_session_token(self, user_id: int, token: str) -> None:
        """Overwrite the account's session token and stamp last_login."""
        async with self.pool.acquire() as conn, timed_query("update"):
            await conn.execute(
                "UPDATE accounts SET session_token = $2, last_login = NOW() WHERE user_id = $1",
                user_id,
                token,
            )

    async def clear_session_token(self, user_id: int, token: str) -> bool:
        """Clear the session only while token is still the stored one.

        Returns False when another login has replaced it in the meantime.
        """
        async with self.pool.acquire() as conn, timed_query("update"):
            result = await conn.execute(
                "UPDATE accounts SET session_token = NULL WHERE user_id = $1 AND session_token = $2",
                user_id,
                token,
            )
        return result != "UPDATE 0"

    async def touch_last_login(self, user_id: int) -> bool:
        """Record activity for the online-user view. Returns False if no such account."""
        async with self.pool.acquire() as conn, timed_query("update"):
            result = await conn.execute("UPDATE accounts SET last_login = NOW() WHERE user_id = $1", user_id)
        return result != "UPDATE 0"

    async def record_login(
        self,
        user_id: int | None,
        username: str,
        success: bool,
        failure_reason: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """Append one row to the login audit log."""
        async with self.pool.acquire() as conn, timed_query("insert"):
            await conn.execute(
                """
                INSERT INTO login_logs (user_id, username, ip_address, user_agent, status, failure_reason)
                VALUES ($1, $2, $3, $4, $5, $6)
                """,
                user_id,
                username,
                ip_address or "unknown",
                user_agent,
                LOGIN_STATUS_SUCCESS if success else LOGIN_STATUS_FAILED,
                failure_reason,
            )

    async def recently_active_ids(self, threshold_minutes: int) -> list[int]:
        """Accounts whose last login or heartbeat is within the threshold."""
        async with self.pool.acquire() as conn, timed_query("select"):
            rows = await conn.fetch(
                """
                SELECT user_id FROM accounts
                WHERE last_login > NOW() - make_interval(mins => $1)
                """,
                threshold_minutes,
            )
        return [row["user_id"] for row in rows]

    async def stats(self) -> dict[str, Any]:
        """Account counts for the admin dashboard."""
        async with self.pool.acquire() as conn, timed_query("select"):
            totals = await conn.fetchrow(
                """
                SELECT
                    COUNT(*) AS total_users,
                    COUNT(*) FILTER (WHERE role = $1) AS admin_count,
                    COUNT(*) FILTER (WHERE created_at > NOW() - INTERVAL '7 days') AS new_users_7d,
                    COUNT(*) FILTER (WHERE last_login > NOW() - INTERVAL '7 days') AS active_users_7d
                FROM accounts
                """,
                ADMIN_ROLE,
            )
            by_role = await conn.fetch(
                "SELECT role, COUNT(*) AS count FROM accounts GROUP BY role ORDER BY role",
            )
        return {
            "total_users": totals["total_users"],
            "admin_count": totals["admin_count"],
            "new_users_7d": totals["new_users_7d"],
            "active_users_7d": totals["active_users_7d"],
            "users_by_role": [{"role": row["role"], "count": row["count"]} for row in by_role],
        }
