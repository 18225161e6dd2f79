"""Reconnecting client for the push streams.

Opens a channel's Server-Sent Events endpoint with httpx, parses ``data:``
frames into typed events and hands them to a callback. Dropped streams are
reopened with exponential backoff until the session is invalidated, the
server rejects the credentials, or ``stop()`` is called.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from pydantic import ValidationError

from core.constants import NOTIFICATION_CHANNEL, SESSION_CHANNEL
from models.event_models import ConnectedEvent, PushEvent, SessionInvalidatedEvent, parse_event

logger = logging.getLogger(__name__)

EventCallback = Callable[[PushEvent], Awaitable[None] | None]

# Channel -> (path, token query parameter)
_CHANNEL_ENDPOINTS: dict[str, tuple[str, str]] = {
    SESSION_CHANNEL: ("/api/v1/stream/session", "sessionToken"),
    NOTIFICATION_CHANNEL: ("/api/v1/stream/notifications", "token"),
}

_TERMINAL_STATUSES = frozenset({401, 403})


@dataclass
class ReconnectPolicy:
    """Exponential backoff settings for reopening a stream."""

    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    max_attempts: int | None = None
    jitter: float = 0.1

    def delay(self, attempt: int) -> float:
        """Seconds to wait before reconnect ``attempt`` (0-based)."""
        base = min(self.initial_delay * (self.multiplier**attempt), self.max_delay)
        if self.jitter:
            base += random.uniform(0, base * self.jitter)
        return min(base, self.max_delay)

    def exhausted(self, attempt: int) -> bool:
        return self.max_attempts is not None and attempt >= self.max_attempts


class StreamRejected(Exception):
    """The server refused the stream credentials."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"Stream rejected with HTTP {status_code}")


class PushStreamClient:
    """Consume one push channel and reconnect when it drops.

    Usage:
        async with PushStreamClient(url, "notifications", 3, token, on_event) as client:
            await client.wait_closed()
    """

    def __init__(
        self,
        base_url: str,
        channel: str,
        user_id: int,
        session_token: str,
        on_event: EventCallback,
        policy: ReconnectPolicy | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        if channel not in _CHANNEL_ENDPOINTS:
            raise ValueError(f"Unknown push channel: {channel}")
        self.base_url = base_url.rstrip("/")
        self.channel = channel
        self.user_id = user_id
        self.session_token = session_token
        self.on_event = on_event
        self.policy = policy or ReconnectPolicy()
        self._client = client
        self._owns_client = client is None
        self._stopped = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.attempt = 0
        self.stop_reason: str | None = None

    async def __aenter__(self) -> PushStreamClient:
        self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start consuming in a background task."""
        if self.running:
            return
        self._stopped.clear()
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Stop consuming; no further reconnects are made."""
        self._finish("stopped")
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def wait_closed(self) -> None:
        await self._stopped.wait()

    def _finish(self, reason: str) -> None:
        if self.stop_reason is None:
            self.stop_reason = reason
        self._stopped.set()

    def _url_and_params(self) -> tuple[str, dict[str, Any]]:
        path, token_param = _CHANNEL_ENDPOINTS[self.channel]
        return f"{self.base_url}{path}", {"userId": self.user_id, token_param: self.session_token}

    async def run(self) -> None:
        """Consume the stream until a terminal condition is reached.

        Waiters on ``wait_closed`` are always released when this returns,
        including when it fails unexpectedly (``stop_reason == "failed"``).
        """
        try:
            await self._run()
        except Exception:
            logger.error(f"{self.channel}: push client failed", exc_info=True)
            self._finish("failed")
        finally:
            self._finish("stopped")

    async def _run(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(10.0, read=None))

        while not self._stopped.is_set():
            try:
                await self._consume_once()
            except StreamRejected as e:
                logger.warning(f"{self.channel}: {e}; not reconnecting")
                self._finish("rejected")
                return
            except httpx.HTTPError as e:
                logger.info(f"{self.channel}: stream dropped: {e}")

            if self._stopped.is_set():
                return
            if self.policy.exhausted(self.attempt):
                logger.warning(f"{self.channel}: giving up after {self.attempt} reconnect attempts")
                self._finish("exhausted")
                return

            delay = self.policy.delay(self.attempt)
            self.attempt += 1
            logger.info(f"{self.channel}: reconnecting in {delay:.1f}s (attempt {self.attempt})")
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stopped.wait(), timeout=delay)

    async def _consume_once(self) -> None:
        assert self._client is not None
        url, params = self._url_and_params()
        async with self._client.stream("GET", url, params=params, headers={"Accept": "text/event-stream"}) as response:
            if response.status_code in _TERMINAL_STATUSES:
                raise StreamRejected(response.status_code)
            response.raise_for_status()

            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                event = self._parse(line[len("data:") :].strip())
                if event is None:
                    continue
                if isinstance(event, ConnectedEvent):
                    self.attempt = 0
                await self._dispatch(event)
                if isinstance(event, SessionInvalidatedEvent):
                    logger.info(f"{self.channel}: session invalidated; not reconnecting")
                    self._finish("session_invalidated")
                    return
                if self._stopped.is_set():
                    return

    def _parse(self, payload: str) -> PushEvent | None:
        if not payload:
            return None
        try:
            return parse_event(payload)
        except ValidationError:
            logger.warning(f"{self.channel}: ignoring unrecognized frame: {payload[:100]}")
            return None

    async def _dispatch(self, event: PushEvent) -> None:
        try:
            result = self.on_event(event)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            # A failing callback drops that event, not the stream
            logger.error(f"{self.channel}: on_event failed for {event.type}", exc_info=True)
