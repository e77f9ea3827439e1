"""Prometheus metrics for the watch layer."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

watch_reconnects_total = Counter(
    "k0watch_watch_reconnects_total",
    "Watch sessions that went back to STARTING after a failure",
    ["manager", "kind", "reason"],
)

sessions_active = Gauge(
    "k0watch_sessions_active",
    "Watch session tasks currently running",
    ["manager"],
)

breaker_open_total = Counter(
    "k0watch_breaker_open_total",
    "Circuit breaker transitions into OPEN",
    ["scope"],
)

deltas_published_total = Counter(
    "k0watch_deltas_published_total",
    "Deltas handed to subscriber streams",
    ["manager"],
)

deltas_dropped_total = Counter(
    "k0watch_deltas_dropped_total",
    "Deltas evicted from a full subscriber stream",
    ["manager"],
)
