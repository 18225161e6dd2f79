"""
Prometheus metrics configuration for Push Relay.

Defines the counters and gauges updated by the connection registries,
the read-through cache and the session guard.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# Use standard Prometheus naming conventions: namespace_subsystem_name_unit
NAMESPACE = "pushrelay"


# ============================================================================
# Push Connection Metrics
# ============================================================================

push_connections_active = Gauge(
    f"{NAMESPACE}_push_connections_active",
    "Number of currently registered push connections",
    ["channel"],
)

push_connections_total = Counter(
    f"{NAMESPACE}_push_connections_total",
    "Total number of push connections registered",
    ["channel"],
)

push_events_delivered_total = Counter(
    f"{NAMESPACE}_push_events_delivered_total",
    "Events handed to live push connections",
    ["channel", "event_type"],
)

push_transport_failures_total = Counter(
    f"{NAMESPACE}_push_transport_failures_total",
    "Sends that failed and demoted a connection",
    ["channel"],
)

liveness_evictions_total = Counter(
    f"{NAMESPACE}_liveness_evictions_total",
    "Connections demoted by the idle sweep",
    ["channel"],
)


# ============================================================================
# Cache Metrics
# ============================================================================

cache_hits_total = Counter(
    f"{NAMESPACE}_cache_hits_total",
    "Read-through cache hits",
    ["cache"],
)

cache_misses_total = Counter(
    f"{NAMESPACE}_cache_misses_total",
    "Read-through cache misses",
    ["cache"],
)


# ============================================================================
# Session Metrics
# ============================================================================

login_attempts_total = Counter(
    f"{NAMESPACE}_login_attempts_total",
    "Login attempts by outcome",
    ["outcome"],  # "success", "forced", "conflict", "invalid"
)


# ============================================================================
# Database Metrics
# ============================================================================

db_query_duration_seconds = Histogram(
    f"{NAMESPACE}_db_query_duration_seconds",
    "Database query duration in seconds",
    ["query_type"],  # "select", "insert", "update", "delete"
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)
