from __future__ import annotations

from api.middleware.exception_handlers import AccountNotFoundError
from api.realtime.registry import ConnectionRegistry
from api.services.account_store import AccountStore
from api.services.notification_store import NotificationStore
from core.constants import CACHE_KEY_ADMIN_STATS, CACHE_KEY_ONLINE_USERS, Settings
from models.schemas.admin import AdminStats
from utils.cache import TTLCache


class AdminService:
    """Cached read models for the admin console."""

    def __init__(
        self,
        accounts: AccountStore,
        notifications: NotificationStore,
        registries: list[ConnectionRegistry],
        cache: TTLCache,
        settings: Settings,
    ):
        self.accounts = accounts
        self.notifications = notifications
        self.registries = registries
        self.cache = cache
        self.settings = settings

    async def online_user_ids(self) -> list[int]:
        """Users holding a live stream or active within the online threshold."""
        return await self.cache.get_or_set(
            CACHE_KEY_ONLINE_USERS,
            self._compute_online_user_ids,
            self.settings.online_users_cache_ttl,
        )

    async def _compute_online_user_ids(self) -> list[int]:
        online = set(await self.accounts.recently_active_ids(self.settings.online_threshold_minutes))
        for registry in self.registries:
            online.update(registry.live_user_ids())
        return sorted(online)

    async def heartbeat(self, user_id: int) -> None:
        """Record activity and drop the cached online list.

        Raises:
            AccountNotFoundError: No such account
        """
        if not await self.accounts.touch_last_login(user_id):
            raise AccountNotFoundError(user_id)
        await self.cache.delete(CACHE_KEY_ONLINE_USERS)

    async def stats(self) -> AdminStats:
        return await self.cache.get_or_set(
            CACHE_KEY_ADMIN_STATS,
            self._compute_stats,
            self.settings.admin_stats_cache_ttl,
        )

    async def _compute_stats(self) -> AdminStats:
        account_stats = await self.accounts.stats()
        notification_stats = await self.notifications.stats()
        return AdminStats(**account_stats, **notification_stats)

    async def invalidate_stats(self) -> bool:
        return await self.cache.delete(CACHE_KEY_ADMIN_STATS)
