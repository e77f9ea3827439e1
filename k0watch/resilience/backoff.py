"""Exponential reconnect backoff with additive jitter."""

from __future__ import annotations

import random

# 2**64 seconds is far past any sane cap; stop exponentiating there.
_MAX_EXPONENT = 64


class Backoff:
    """Per-session reconnect delay generator.

    ``next()`` returns ``min(base * 2**attempt, cap)`` plus 0..``jitter`` of
    that value, clamped to ``cap``, and advances the attempt counter. The
    counter only goes back to zero through ``reset()``.

    Instances are owned by exactly one session and are not thread-safe.
    """

    def __init__(
        self,
        base: float = 1.0,
        cap: float = 60.0,
        jitter: float = 0.2,
        rng: random.Random | None = None,
    ) -> None:
        if base <= 0:
            raise ValueError("base must be positive")
        if cap < base:
            raise ValueError("cap must be >= base")
        if jitter < 0:
            raise ValueError("jitter must be >= 0")
        self._base = base
        self._cap = cap
        self._jitter = jitter
        self._rng = rng or random.Random()
        self._attempt = 0

    @property
    def attempt(self) -> int:
        return self._attempt

    def peek(self) -> float:
        """Un-jittered delay the next ``next()`` call is based on."""
        if self._attempt >= _MAX_EXPONENT:
            return self._cap
        return min(self._base * (2**self._attempt), self._cap)

    def next(self) -> float:
        delay = self.peek()
        self._attempt += 1
        jittered = delay + delay * self._rng.uniform(0.0, self._jitter)
        return min(jittered, self._cap)

    def reset(self) -> None:
        self._attempt = 0
