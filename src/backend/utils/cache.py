"""In-memory TTL cache for the admin read paths.

LRU cache with TTL expiration and read-through ``get_or_set`` for
reducing backing-store queries. Suitable for single-instance deployments.
"""

from __future__ import annotations

import asyncio
import time

from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from utils.logger import logger
from utils.metrics import cache_hits_total, cache_misses_total

T = TypeVar("T")

#: Marks a missing entry; cached values may be None or empty.
_MISSING: Any = object()


class TTLCache:
    """In-memory cache with TTL, max size and per-key single-flight loads.

    Safe for concurrent asyncio tasks (uses asyncio.Lock).
    """

    def __init__(self, max_size: int = 1000, default_ttl: float = 60.0, name: str = "default") -> None:
        """Initialize cache.

        Args:
            max_size: Maximum number of entries (LRU eviction when exceeded)
            default_ttl: Default time-to-live in seconds
            name: Label used in logs and metrics
        """
        self._cache: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._name = name
        self._lock = asyncio.Lock()
        self._inflight: dict[str, asyncio.Future[Any]] = {}
        self._loads: set[asyncio.Task[None]] = set()
        self._hits = 0
        self._misses = 0

    def _lookup(self, key: str) -> Any:
        """Return the live value for key or _MISSING. Caller holds the lock."""
        entry = self._cache.get(key)
        if entry is None:
            return _MISSING
        value, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._cache[key]
            return _MISSING
        self._cache.move_to_end(key)
        return value

    def _record(self, key: str, hit: bool) -> None:
        if hit:
            self._hits += 1
            cache_hits_total.labels(cache=self._name).inc()
        else:
            self._misses += 1
            cache_misses_total.labels(cache=self._name).inc()
        logger.debug(f"Cache {'hit' if hit else 'miss'}: {key}", cache=self._name)

    def _sweep_expired(self, now: float) -> None:
        """Drop every expired entry. Caller holds the lock."""
        expired = [k for k, (_, expires_at) in self._cache.items() if now >= expires_at]
        for key in expired:
            del self._cache[key]

    async def get(self, key: str) -> Any | None:
        """Get value from cache if not expired."""
        async with self._lock:
            value = self._lookup(key)
            self._record(key, value is not _MISSING)
            return None if value is _MISSING else value

    async def contains(self, key: str) -> bool:
        """Check for a live entry without touching hit statistics."""
        async with self._lock:
            return self._lookup(key) is not _MISSING

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Set value in cache with TTL."""
        async with self._lock:
            self._store(key, value, ttl)

    def _store(self, key: str, value: Any, ttl: float | None) -> None:
        ttl = ttl if ttl is not None else self._default_ttl
        now = time.monotonic()

        self._sweep_expired(now)
        self._cache.pop(key, None)

        # Evict least recently used entries if at capacity
        while len(self._cache) >= self._max_size:
            self._cache.popitem(last=False)

        self._cache[key] = (value, now + ttl)

    async def delete(self, key: str) -> bool:
        """Remove entry from cache.

        A load already in flight for the key is detached, so its result is
        returned to its own waiters but never stored over the invalidation.
        """
        async with self._lock:
            self._inflight.pop(key, None)
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    async def clear(self) -> None:
        """Clear all entries."""
        async with self._lock:
            self._cache.clear()
            self._inflight.clear()

    async def get_or_set(
        self,
        key: str,
        compute: Callable[[], Awaitable[T]],
        ttl: float | None = None,
    ) -> T:
        """Return the cached value for key, computing and storing it on a miss.

        Concurrent misses on the same key share one call to ``compute``,
        which runs in its own task: cancelling one caller does not cancel
        the load for the others. If ``compute`` raises, every waiter sees
        the exception and nothing is stored.
        """
        async with self._lock:
            value = self._lookup(key)
            if value is not _MISSING:
                self._record(key, True)
                return value  # type: ignore[no-any-return]
            self._record(key, False)

            future = self._inflight.get(key)
            if future is None:
                future = asyncio.get_running_loop().create_future()
                self._inflight[key] = future
                load = asyncio.create_task(self._load(key, future, compute, ttl))
                self._loads.add(load)
                load.add_done_callback(self._loads.discard)

        return await asyncio.shield(future)  # type: ignore[no-any-return]

    async def _load(
        self,
        key: str,
        future: asyncio.Future[Any],
        compute: Callable[[], Awaitable[Any]],
        ttl: float | None,
    ) -> None:
        try:
            result = await compute()
        except asyncio.CancelledError:
            self._abandon(key, future)
            future.cancel()
            raise
        except Exception as exc:
            self._abandon(key, future)
            future.set_exception(exc)
            # Mark retrieved so a failure nobody awaited does not warn
            future.exception()
            return

        async with self._lock:
            # Only store if no delete() happened while computing
            if self._inflight.get(key) is future:
                del self._inflight[key]
                self._store(key, result, ttl)
        future.set_result(result)

    def _abandon(self, key: str, future: asyncio.Future[Any]) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]

    def stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total = self._hits + self._misses
        hit_rate = self._hits / total if total > 0 else 0.0
        return {
            "name": self._name,
            "size": len(self._cache),
            "max_size": self._max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": f"{hit_rate:.1%}",
            "inflight": len(self._inflight),
        }
