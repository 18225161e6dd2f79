from __future__ import annotations

from typing import Any

import asyncpg

from models.schemas.notifications import NotificationInfo
from utils.db_utils import timed_query

_SELECT_NOTIFICATION = """
    SELECT n.notification_id, n.title, n.content, n.created_at,
           n.sender_id, a.username AS sender_name, n.recipient_id, n.read
    FROM notifications n
    LEFT JOIN accounts a ON a.user_id = n.sender_id
"""


class NotificationStore:
    """Notification rows in PostgreSQL.

    A row with a NULL recipient is a broadcast; its single ``read`` flag is
    shared by every user.
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def insert(
        self,
        title: str,
        content: str,
        sender_id: int,
        recipient_id: int | None = None,
    ) -> NotificationInfo:
        async with self.pool.acquire() as conn, timed_query("insert"):
            row = await conn.fetchrow(
                """
                WITH inserted AS (
                    INSERT INTO notifications (title, content, sender_id, recipient_id)
                    VALUES ($1, $2, $3, $4)
                    RETURNING *
                )
                SELECT i.notification_id, i.title, i.content, i.created_at,
                       i.sender_id, a.username AS sender_name, i.recipient_id, i.read
                FROM inserted i
                LEFT JOIN accounts a ON a.user_id = i.sender_id
                """,
                title,
                content,
                sender_id,
                recipient_id,
            )
        return NotificationInfo.from_record(row)

    async def get(self, notification_id: int) -> NotificationInfo | None:
        async with self.pool.acquire() as conn, timed_query("select"):
            row = await conn.fetchrow(f"{_SELECT_NOTIFICATION} WHERE n.notification_id = $1", notification_id)
        return NotificationInfo.from_record(row) if row else None

    async def delete(self, notification_id: int) -> NotificationInfo | None:
        """Delete a row and return it, or None if it did not exist."""
        async with self.pool.acquire() as conn, timed_query("delete"):
            row = await conn.fetchrow(
                """
                DELETE FROM notifications
                WHERE notification_id = $1
                RETURNING notification_id, title, content, created_at, sender_id, recipient_id, read
                """,
                notification_id,
            )
        return NotificationInfo.from_record(row) if row else None

    async def mark_read(self, notification_id: int, user_id: int) -> bool:
        """Mark one row read if the user can see it. Returns False otherwise."""
        async with self.pool.acquire() as conn, timed_query("update"):
            result = await conn.execute(
                """
                UPDATE notifications SET read = TRUE
                WHERE notification_id = $1 AND (recipient_id IS NULL OR recipient_id = $2)
                """,
                notification_id,
                user_id,
            )
        return result != "UPDATE 0"

    async def mark_all_read(self, user_id: int) -> int:
        """Mark every unread row visible to the user. Returns the number updated."""
        async with self.pool.acquire() as conn, timed_query("update"):
            result = await conn.execute(
                """
                UPDATE notifications SET read = TRUE
                WHERE read = FALSE AND (recipient_id IS NULL OR recipient_id = $1)
                """,
                user_id,
            )
        return int(result.split()[-1])

    async def list_visible_to(self, user_id: int | None) -> list[NotificationInfo]:
        """Rows visible to user_id, newest first. None lists every row."""
        async with self.pool.acquire() as conn, timed_query("select"):
            if user_id is None:
                rows = await conn.fetch(f"{_SELECT_NOTIFICATION} ORDER BY n.created_at DESC, n.notification_id DESC")
            else:
                rows = await conn.fetch(
                    f"""{_SELECT_NOTIFICATION}
                    WHERE n.recipient_id IS NULL OR n.recipient_id = $1
                    ORDER BY n.created_at DESC, n.notification_id DESC""",
                    user_id,
                )
        return [NotificationInfo.from_record(row) for row in rows]

    async def stats(self) -> dict[str, Any]:
        async with self.pool.acquire() as conn, timed_query("select"):
            row = await conn.fetchrow(
                """
                SELECT
                    COUNT(*) AS total_notifications,
                    COUNT(*) FILTER (WHERE read = FALSE) AS unread_notifications,
                    COUNT(*) FILTER (WHERE created_at > NOW() - INTERVAL '7 days') AS new_notifications_7d
                FROM notifications
                """
            )
        return {
            "total_notifications": row["total_notifications"],
            "unread_notifications": row["unread_notifications"],
            "new_notifications_7d": row["new_notifications_7d"],
        }
