"""Tests for Prometheus metrics module.

Tests metric naming, labeling, and observation.
"""

from __future__ import annotations

from utils.metrics import (
    NAMESPACE,
    cache_hits_total,
    cache_misses_total,
    db_query_duration_seconds,
    liveness_evictions_total,
    login_attempts_total,
    push_connections_active,
    push_connections_total,
    push_events_delivered_total,
    push_transport_failures_total,
)


def test_namespace() -> None:
    assert NAMESPACE == "pushrelay"


class TestPushMetrics:
    def test_connection_metrics_are_per_channel(self) -> None:
        for metric in (
            push_connections_active,
            push_connections_total,
            push_transport_failures_total,
            liveness_evictions_total,
        ):
            assert metric._labelnames == ("channel",)

    def test_active_gauge_can_be_set(self) -> None:
        gauge = push_connections_active.labels(channel="session")
        gauge.set(4)

        assert gauge._value.get() == 4

    def test_delivered_counter_labels(self) -> None:
        assert push_events_delivered_total._labelnames == ("channel", "event_type")

        counter = push_events_delivered_total.labels(channel="notifications", event_type="new_notification")
        before = counter._value.get()
        counter.inc(7)

        assert counter._value.get() == before + 7


class TestCacheMetrics:
    def test_hits_and_misses_labelled_by_cache(self) -> None:
        assert cache_hits_total._labelnames == ("cache",)
        assert cache_misses_total._labelnames == ("cache",)

        cache_hits_total.labels(cache="admin").inc()
        cache_misses_total.labels(cache="admin").inc()


def test_login_attempts_by_outcome() -> None:
    assert login_attempts_total._labelnames == ("outcome",)
    login_attempts_total.labels(outcome="conflict").inc()


def test_db_query_duration_can_observe() -> None:
    assert "query_type" in db_query_duration_seconds._labelnames
    db_query_duration_seconds.labels(query_type="select").observe(0.02)
