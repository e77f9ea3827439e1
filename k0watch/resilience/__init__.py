"""Reconnect resilience primitives.

Backoff         -- per-session exponential delay generator with additive jitter.
CircuitBreaker  -- failure-counting gate that pauses reconnects during outages.
BreakerRegistry -- scopes breaker sharing per session, kind, namespace or manager.
"""

from k0watch.resilience.backoff import Backoff
from k0watch.resilience.circuit_breaker import (
    BreakerRegistry,
    BreakerScope,
    BreakerState,
    CircuitBreaker,
)

__all__ = [
    "Backoff",
    "BreakerRegistry",
    "BreakerScope",
    "BreakerState",
    "CircuitBreaker",
]
