from __future__ import annotations

import asyncio
import contextlib
import inspect
import time

from collections.abc import Awaitable, Callable
from typing import Any

from api.realtime.connection import Connection, TransportFailure
from models.event_models import PushEvent
from utils.logger import logger
from utils.metrics import (
    liveness_evictions_total,
    push_connections_active,
    push_connections_total,
    push_events_delivered_total,
    push_transport_failures_total,
)

DeliverFn = Callable[[Connection], Awaitable[None] | None]


class ConnectionRegistry:
    """Live push connections for one channel, keyed by user ID, with an idle sweep.

    A user ID is kept only while it maps to at least one connection; empty
    sets are deleted as soon as they appear.
    """

    def __init__(
        self,
        channel: str,
        idle_timeout_seconds: float = 300.0,
        sweep_interval_seconds: float = 60.0,
    ) -> None:
        """Initialize the registry.

        Args:
            channel: Channel name used in logs and metrics
            idle_timeout_seconds: Demote connections without activity for this long (default 5 min)
            sweep_interval_seconds: Interval between timer-driven sweeps
        """
        self.channel = channel
        self.connections: dict[int, set[Connection]] = {}
        self.idle_timeout = idle_timeout_seconds
        self.sweep_interval = sweep_interval_seconds
        self._lock = asyncio.Lock()
        self._sweeper_task: asyncio.Task[None] | None = None
        self._shutting_down = False

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register(self, user_id: int, connection: Connection) -> bool:
        """Add a connection under user_id.

        Returns:
            True if accepted, False if the registry is shutting down
        """
        async with self._lock:
            if self._shutting_down:
                logger.warning(f"Rejecting {self.channel} connection during shutdown for user {user_id}")
                return False
            self._add(user_id, connection)
        logger.info(
            f"{self.channel} stream connected for user {user_id} "
            f"(total: {self.connection_count}, user: {len(self.connections.get(user_id, ()))})",
            channel=self.channel,
            user_id=user_id,
        )
        return True

    async def replace(self, user_id: int, connection: Connection) -> bool:
        """Register a connection after retiring the user's existing ones.

        Used when a client reopens a stream (e.g. page reload) so the old
        connection does not linger until the idle sweep.
        """
        async with self._lock:
            if self._shutting_down:
                logger.warning(f"Rejecting {self.channel} connection during shutdown for user {user_id}")
                return False
            previous = self.connections.pop(user_id, set())
            for old in previous:
                old.close()
            self._add(user_id, connection)
        if previous:
            logger.info(
                f"Replaced {len(previous)} {self.channel} connection(s) for user {user_id}",
                channel=self.channel,
                user_id=user_id,
            )
        return True

    def _add(self, user_id: int, connection: Connection) -> None:
        connection.is_active = True
        connection.last_activity = time.monotonic()
        self.connections.setdefault(user_id, set()).add(connection)
        push_connections_total.labels(channel=self.channel).inc()
        self._update_gauge()

    async def unregister(self, user_id: int, connection: Connection) -> None:
        """Remove a single connection; drop the user entry once it is empty."""
        connection.close()
        async with self._lock:
            user_connections = self.connections.get(user_id)
            if user_connections is None or connection not in user_connections:
                return
            user_connections.discard(connection)
            if not user_connections:
                del self.connections[user_id]
            self._update_gauge()
        logger.info(
            f"{self.channel} stream disconnected for user {user_id} (total: {self.connection_count})",
            channel=self.channel,
            user_id=user_id,
        )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def for_each_live(self, user_id: int, fn: DeliverFn) -> int:
        """Call fn on each live connection of one user.

        A failure from fn demotes only that connection. Inactive connections
        are pruned afterwards.

        Returns:
            Number of connections fn completed on
        """
        async with self._lock:
            snapshot = [c for c in self.connections.get(user_id, ()) if c.is_active]
        return await self._deliver(snapshot, fn)

    async def for_each_live_all(self, fn: DeliverFn) -> int:
        """Call fn on every live connection of every user."""
        async with self._lock:
            snapshot = [c for conns in self.connections.values() for c in conns if c.is_active]
        return await self._deliver(snapshot, fn)

    async def _deliver(self, snapshot: list[Connection], fn: DeliverFn) -> int:
        delivered = 0
        failed = 0
        for connection in snapshot:
            try:
                result = fn(connection)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: PERF203
                connection.is_active = False
                failed += 1
                reason = exc.reason if isinstance(exc, TransportFailure) else f"{type(exc).__name__}: {exc}"
                logger.warning(
                    f"Send failed on {self.channel} connection {connection.connection_id} "
                    f"for user {connection.user_id}: {reason}",
                    channel=self.channel,
                    user_id=connection.user_id,
                )
            else:
                delivered += 1
        if failed:
            push_transport_failures_total.labels(channel=self.channel).inc(failed)
        await self.prune()
        return delivered

    async def send(self, user_id: int, event: PushEvent) -> int:
        """Serialize event once and enqueue it on the user's live connections."""
        frame = event.to_frame()
        delivered = await self.for_each_live(user_id, lambda c: c.send(frame))
        self._record_delivery(event, delivered, user_id)
        return delivered

    async def broadcast(self, event: PushEvent) -> int:
        """Serialize event once and enqueue it on every live connection."""
        frame = event.to_frame()
        delivered = await self.for_each_live_all(lambda c: c.send(frame))
        self._record_delivery(event, delivered)
        return delivered

    def _record_delivery(self, event: PushEvent, delivered: int, user_id: int | None = None) -> None:
        push_events_delivered_total.labels(channel=self.channel, event_type=event.type).inc(delivered)
        logger.log_delivery(self.channel, event.type, delivered, user_id)

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    async def prune(self) -> int:
        """Remove inactive connections and empty user entries.

        Returns:
            Number of connections removed
        """
        removed = 0
        async with self._lock:
            for user_id, user_connections in list(self.connections.items()):
                dead = {c for c in user_connections if not c.is_active}
                for connection in dead:
                    connection.close()
                user_connections -= dead
                removed += len(dead)
                if not user_connections:
                    del self.connections[user_id]
            if removed:
                self._update_gauge()
        return removed

    async def sweep(self, now: float | None = None) -> int:
        """Demote connections idle longer than the timeout, then prune.

        Never updates ``last_activity`` itself.

        Returns:
            Number of connections evicted as idle
        """
        now = time.monotonic() if now is None else now
        evicted = 0
        async with self._lock:
            for user_connections in self.connections.values():
                for connection in user_connections:
                    if connection.is_active and now - connection.last_activity > self.idle_timeout:
                        connection.is_active = False
                        evicted += 1
        await self.prune()
        if evicted:
            liveness_evictions_total.labels(channel=self.channel).inc(evicted)
            logger.info(f"Evicted {evicted} idle {self.channel} connection(s)", channel=self.channel)
        return evicted

    async def start_sweeper(self) -> None:
        """Start the background liveness sweep."""
        if self._sweeper_task is None:
            self._sweeper_task = asyncio.create_task(self._run_sweeper())
            logger.info(
                f"{self.channel} liveness sweep started "
                f"(interval: {self.sweep_interval}s, idle timeout: {self.idle_timeout}s)"
            )

    async def stop_sweeper(self) -> None:
        """Stop the background liveness sweep."""
        if self._sweeper_task:
            self._sweeper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper_task
            self._sweeper_task = None
            logger.info(f"{self.channel} liveness sweep stopped")

    async def _run_sweeper(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                await self.sweep()
            except Exception:
                logger.error(f"{self.channel} liveness sweep failed", exc_info=True)

    # ------------------------------------------------------------------
    # Shutdown and stats
    # ------------------------------------------------------------------

    async def graceful_shutdown(self) -> None:
        """Stop the sweep, close every connection and clear the registry."""
        self._shutting_down = True
        await self.stop_sweeper()
        async with self._lock:
            closed = 0
            for user_connections in self.connections.values():
                for connection in user_connections:
                    connection.close()
                    closed += 1
            self.connections.clear()
            self._update_gauge()
        logger.info(f"{self.channel} registry shutdown complete (closed {closed} connections)")

    def live_user_ids(self) -> list[int]:
        """User IDs holding at least one active connection."""
        return sorted(uid for uid, conns in self.connections.items() if any(c.is_active for c in conns))

    def _update_gauge(self) -> None:
        push_connections_active.labels(channel=self.channel).set(self.connection_count)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper_task is not None and not self._sweeper_task.done()

    @property
    def connection_count(self) -> int:
        """Total number of registered connections."""
        return sum(len(conns) for conns in self.connections.values())

    @property
    def user_count(self) -> int:
        """Number of users with registered connections."""
        return len(self.connections)

    def get_stats(self) -> dict[str, Any]:
        """Get connection statistics."""
        return {
            "channel": self.channel,
            "connections": self.connection_count,
            "users": self.user_count,
            "sweeper_running": self.sweeper_running,
            "shutting_down": self._shutting_down,
        }
