"""Push connection management for Push Relay.

Provides per-channel connection registries with liveness sweeps.
"""

from __future__ import annotations

from api.realtime.connection import Connection, TransportFailure
from api.realtime.registry import ConnectionRegistry

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "TransportFailure",
]
