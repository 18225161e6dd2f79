"""Tests for the push connection send buffer."""

from __future__ import annotations

import pytest

from api.realtime.connection import Connection, TransportFailure


@pytest.mark.asyncio
async def test_send_then_receive_preserves_order() -> None:
    conn = Connection(user_id=3, channel="notifications")
    conn.send("a")
    conn.send("b")

    assert conn.pending == 2
    assert await conn.receive(timeout=0.1) == "a"
    assert await conn.receive(timeout=0.1) == "b"


@pytest.mark.asyncio
async def test_receive_times_out_with_none_while_open() -> None:
    conn = Connection(user_id=3, channel="session")

    assert await conn.receive(timeout=0.01) is None
    assert conn.is_open


@pytest.mark.asyncio
async def test_send_on_full_buffer_raises_transport_failure() -> None:
    conn = Connection(user_id=3, channel="session", queue_size=1)
    conn.send("first")

    with pytest.raises(TransportFailure) as exc_info:
        conn.send("second")

    assert exc_info.value.connection_id == conn.connection_id
    assert "full" in exc_info.value.reason


@pytest.mark.asyncio
async def test_send_after_close_raises() -> None:
    conn = Connection(user_id=3, channel="session")
    conn.close()

    assert conn.is_active is False
    with pytest.raises(TransportFailure):
        conn.send("late")


@pytest.mark.asyncio
async def test_close_wakes_reader_even_with_full_buffer() -> None:
    conn = Connection(user_id=3, channel="session", queue_size=1)
    conn.send("pending")

    conn.close()

    assert await conn.receive(timeout=0.1) is None
    assert not conn.is_open
    # Closing twice is harmless
    conn.close()
    assert await conn.receive(timeout=0.01) is None


@pytest.mark.asyncio
async def test_send_refreshes_last_activity() -> None:
    conn = Connection(user_id=3, channel="session")
    conn.last_activity = 0.0

    conn.send("x")

    assert conn.last_activity > 0.0
