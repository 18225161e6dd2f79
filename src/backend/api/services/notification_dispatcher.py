"""Notification writes with push fan-out and cache invalidation.

Every write persists first, then pushes to live notification streams, then
invalidates the cached admin views. Delivery is best-effort: a connection
that is offline at creation time sees the row on its next list fetch.
"""

from __future__ import annotations

from api.middleware.exception_handlers import (
    AccountNotFoundError,
    ForbiddenError,
    NotificationNotFoundError,
)
from api.realtime.registry import ConnectionRegistry
from api.services.account_store import AccountStore
from api.services.notification_store import NotificationStore
from core.constants import ADMIN_ROLE, CACHE_KEY_ADMIN_STATS, CACHE_KEY_ALL_NOTIFICATIONS
from models.event_models import NewNotificationEvent, NotificationDeletedEvent
from models.schemas.notifications import NotificationInfo
from utils.cache import TTLCache
from utils.logger import logger


class NotificationDispatcher:
    def __init__(
        self,
        notifications: NotificationStore,
        accounts: AccountStore,
        registry: ConnectionRegistry,
        cache: TTLCache,
        list_ttl: float = 15.0,
    ):
        self.notifications = notifications
        self.accounts = accounts
        self.registry = registry
        self.cache = cache
        self.list_ttl = list_ttl

    async def create(
        self,
        title: str,
        content: str,
        sender_id: int,
        recipient_id: int | None = None,
    ) -> NotificationInfo:
        """Persist a notification and push it to its audience.

        Raises:
            AccountNotFoundError: Sender or targeted recipient does not exist
            ForbiddenError: Sender is not an admin
        """
        sender = await self.accounts.get_by_id(sender_id)
        if sender is None:
            raise AccountNotFoundError(sender_id)
        if sender["role"] != ADMIN_ROLE:
            raise ForbiddenError("Only administrators can send notifications", details={"sender_id": sender_id})
        if recipient_id is not None and not await self.accounts.exists(recipient_id):
            raise AccountNotFoundError(recipient_id)

        notification = await self.notifications.insert(title, content, sender_id, recipient_id)

        event = NewNotificationEvent(notification=notification)
        if notification.is_broadcast:
            delivered = await self.registry.broadcast(event)
        else:
            delivered = await self.registry.send(notification.recipient_id, event)  # type: ignore[arg-type]

        await self._invalidate(CACHE_KEY_ALL_NOTIFICATIONS, CACHE_KEY_ADMIN_STATS)
        audience = "all users" if notification.is_broadcast else f"user {recipient_id}"
        logger.info(
            f"Notification {notification.notification_id} created for {audience} "
            f"({delivered} live connection(s))",
            user_id=sender_id,
        )
        return notification

    async def delete(self, notification_id: int) -> NotificationInfo:
        """Remove a notification and tell its original audience.

        Raises:
            NotificationNotFoundError: No such notification
        """
        deleted = await self.notifications.delete(notification_id)
        if deleted is None:
            raise NotificationNotFoundError(notification_id)

        event = NotificationDeletedEvent(notification_id=notification_id)
        if deleted.is_broadcast:
            await self.registry.broadcast(event)
        else:
            await self.registry.send(deleted.recipient_id, event)  # type: ignore[arg-type]

        await self._invalidate(CACHE_KEY_ALL_NOTIFICATIONS, CACHE_KEY_ADMIN_STATS)
        logger.info(f"Notification {notification_id} deleted")
        return deleted

    async def mark_read(self, notification_id: int, caller_id: int) -> None:
        """Mark one notification read for the caller.

        Raises:
            NotificationNotFoundError: No such notification
            ForbiddenError: It is targeted at a different user; the row is left untouched
        """
        existing = await self.notifications.get(notification_id)
        if existing is None:
            raise NotificationNotFoundError(notification_id)
        if existing.recipient_id is not None and existing.recipient_id != caller_id:
            raise ForbiddenError(
                "Cannot mark another user's notification as read",
                details={"notification_id": notification_id},
            )
        if not await self.notifications.mark_read(notification_id, caller_id):
            # Deleted between the lookup and the update
            raise NotificationNotFoundError(notification_id)
        await self._invalidate(CACHE_KEY_ALL_NOTIFICATIONS, CACHE_KEY_ADMIN_STATS)

    async def mark_all_read(self, caller_id: int) -> int:
        """Mark every unread notification visible to the caller. Returns the count."""
        updated = await self.notifications.mark_all_read(caller_id)
        if updated:
            await self._invalidate(CACHE_KEY_ALL_NOTIFICATIONS, CACHE_KEY_ADMIN_STATS)
        return updated

    async def list_for_user(self, user_id: int) -> list[NotificationInfo]:
        """Broadcast rows plus rows targeted at the user, newest first. Not cached."""
        return await self.notifications.list_visible_to(user_id)

    async def list_all(self) -> list[NotificationInfo]:
        """Admin view of every notification, read through the cache."""
        return await self.cache.get_or_set(
            CACHE_KEY_ALL_NOTIFICATIONS,
            lambda: self.notifications.list_visible_to(None),
            self.list_ttl,
        )

    async def _invalidate(self, *keys: str) -> None:
        for key in keys:
            await self.cache.delete(key)
