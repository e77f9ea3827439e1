"""Circuit breaker gating reconnect attempts during sustained outages.

CircuitBreaker  -- CLOSED -> OPEN after ``threshold`` consecutive failures,
                   OPEN -> HALF_OPEN once ``cooldown`` has elapsed (one trial),
                   HALF_OPEN -> CLOSED on success or back to OPEN on failure.
BreakerRegistry -- hands breakers to sessions according to a BreakerScope so
                   that the sharing granularity is a constructor decision.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from enum import StrEnum

import structlog

from k0watch.observability.metrics import breaker_open_total

_log = structlog.get_logger(component="resilience.circuit_breaker")


class BreakerState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class BreakerScope(StrEnum):
    """How sessions of one manager share breakers."""

    SESSION = "session"
    KIND = "kind"
    NAMESPACE = "namespace"
    MANAGER = "manager"


class CircuitBreaker:
    """Failure-counting gate. Safe to share between tasks and threads."""

    def __init__(
        self,
        name: str = "default",
        threshold: int = 5,
        cooldown: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        if cooldown < 0:
            raise ValueError("cooldown must be >= 0")
        self.name = name
        self._threshold = threshold
        self._cooldown = cooldown
        self._clock = clock
        self._lock = threading.Lock()
        self._state = BreakerState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: float | None = None
        self._trial_in_flight = False

    @property
    def state(self) -> BreakerState:
        with self._lock:
            return self._state

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive_failures

    def allow(self) -> bool:
        """Return True when a connection attempt may proceed.

        In HALF_OPEN exactly one caller gets True until the trial outcome is
        recorded.
        """
        with self._lock:
            if self._state is BreakerState.CLOSED:
                return True
            if self._state is BreakerState.OPEN:
                assert self._opened_at is not None
                if self._clock() - self._opened_at < self._cooldown:
                    return False
                self._state = BreakerState.HALF_OPEN
                self._trial_in_flight = True
                _log.info("breaker_half_open", breaker=self.name)
                return True
            if self._trial_in_flight:
                return False
            self._trial_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            if self._state is not BreakerState.CLOSED:
                _log.info("breaker_closed", breaker=self.name)
            self._state = BreakerState.CLOSED
            self._consecutive_failures = 0
            self._opened_at = None
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._consecutive_failures += 1
            if self._state is BreakerState.HALF_OPEN:
                self._trip()
            elif self._state is BreakerState.CLOSED and self._consecutive_failures >= self._threshold:
                self._trip()

    def release_trial(self) -> None:
        """Hand back a half-open trial whose outcome will never be recorded.

        The caller was cancelled mid-attempt; the next ``allow()`` grants a
        fresh trial. Failure counts are left untouched.
        """
        with self._lock:
            if self._state is BreakerState.HALF_OPEN and self._trial_in_flight:
                self._trial_in_flight = False
                _log.info("breaker_trial_released", breaker=self.name)

    def retry_after(self) -> float:
        """Seconds until ``allow()`` can next return True (0 if it may now)."""
        with self._lock:
            if self._state is not BreakerState.OPEN or self._opened_at is None:
                return 0.0
            return max(0.0, self._cooldown - (self._clock() - self._opened_at))

    def _trip(self) -> None:
        # Caller holds the lock.
        self._state = BreakerState.OPEN
        self._opened_at = self._clock()
        self._trial_in_flight = False
        breaker_open_total.labels(scope=self.name).inc()
        _log.warning(
            "breaker_opened",
            breaker=self.name,
            consecutive_failures=self._consecutive_failures,
            cooldown=self._cooldown,
        )


class BreakerRegistry:
    """Hands out breakers for sessions according to ``scope``.

    Scopes never share a breaker across unrelated kinds unless ``MANAGER``
    is chosen explicitly.
    """

    def __init__(
        self,
        scope: BreakerScope | str = BreakerScope.NAMESPACE,
        threshold: int = 5,
        cooldown: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "watch",
    ) -> None:
        self._scope = BreakerScope(scope)
        self._threshold = threshold
        self._cooldown = cooldown
        self._clock = clock
        self._name = name
        self._lock = threading.Lock()
        self._breakers: dict[str, CircuitBreaker] = {}
        self._session_seq = 0

    @property
    def scope(self) -> BreakerScope:
        return self._scope

    def breaker_for(self, kind: str, namespace: str) -> CircuitBreaker:
        with self._lock:
            if self._scope is BreakerScope.SESSION:
                self._session_seq += 1
                key = f"{self._name}/{kind}/{namespace or '*'}#{self._session_seq}"
            elif self._scope is BreakerScope.KIND:
                key = f"{self._name}/{kind}"
            elif self._scope is BreakerScope.NAMESPACE:
                key = f"{self._name}/{kind}/{namespace or '*'}"
            else:
                key = self._name
            breaker = self._breakers.get(key)
            if breaker is None:
                breaker = CircuitBreaker(
                    name=key,
                    threshold=self._threshold,
                    cooldown=self._cooldown,
                    clock=self._clock,
                )
                self._breakers[key] = breaker
            return breaker

    def release(self, breaker: CircuitBreaker) -> None:
        """Forget a per-session breaker once its session has terminated."""
        if self._scope is not BreakerScope.SESSION:
            return
        with self._lock:
            self._breakers.pop(breaker.name, None)

    def states(self) -> dict[str, str]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {b.name: b.state.value for b in breakers}
