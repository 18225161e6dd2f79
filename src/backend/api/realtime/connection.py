"""A single push connection: one stream to one browser tab or device."""

from __future__ import annotations

import asyncio
import contextlib
import secrets
import time

from models.error_models import ErrorCode

#: Queue item that tells the stream reader to finish.
_CLOSE = None


class TransportFailure(Exception):
    """A frame could not be handed to a connection.

    Handled by the registry: the connection is demoted and delivery to the
    user's other connections continues. Never surfaced to API callers.
    """

    code = ErrorCode.PUSH_TRANSPORT_FAILED

    def __init__(self, connection_id: str, reason: str):
        self.connection_id = connection_id
        self.reason = reason
        super().__init__(f"Connection {connection_id}: {reason}")


class Connection:
    """Send side of one push stream.

    Frames are buffered in a bounded queue that the stream response drains,
    so every event reaches a connection through a single ordered path.
    Only the owning registry flips ``is_active``.
    """

    def __init__(self, user_id: int, channel: str, queue_size: int = 100) -> None:
        self.connection_id = secrets.token_hex(6)
        self.user_id = user_id
        self.channel = channel
        self.is_active = True
        self.connected_at = time.monotonic()
        self.last_activity = self.connected_at
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    def __repr__(self) -> str:
        state = "active" if self.is_active else "inactive"
        return f"<Connection {self.connection_id} user={self.user_id} channel={self.channel} {state}>"

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def pending(self) -> int:
        """Frames waiting to be written to the client."""
        return self._queue.qsize()

    def send(self, frame: str) -> None:
        """Enqueue one serialized event.

        Raises:
            TransportFailure: If the connection is closed or its buffer is full.
        """
        if self._closed:
            raise TransportFailure(self.connection_id, "connection closed")
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull as exc:
            raise TransportFailure(self.connection_id, "send buffer full") from exc
        self.last_activity = time.monotonic()

    async def receive(self, timeout: float | None = None) -> str | None:
        """Wait for the next frame.

        Returns None when the wait times out or the connection was closed;
        check ``is_open`` to tell them apart.
        """
        if self._closed and self._queue.empty():
            return None
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def close(self) -> None:
        """Mark inactive and wake the reader so the stream can finish."""
        self.is_active = False
        if self._closed:
            return
        self._closed = True
        # Undelivered frames are dropped to make room for the close marker
        while True:
            try:
                self._queue.put_nowait(_CLOSE)
                return
            except asyncio.QueueFull:
                with contextlib.suppress(asyncio.QueueEmpty):
                    self._queue.get_nowait()
