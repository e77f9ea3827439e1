"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class BackoffConfig:
    """Reconnect delay policy for a single watch session."""

    base_seconds: float = 1.0
    cap_seconds: float = 60.0
    jitter: float = 0.2


@dataclass
class BreakerConfig:
    """Circuit breaker policy.

    ``scope`` controls how sessions share breakers: ``session`` (one per
    session), ``kind`` (per resource kind), ``namespace`` (per kind and
    namespace) or ``manager`` (one per manager instance).
    """

    threshold: int = 5
    cooldown_seconds: float = 30.0
    scope: str = "namespace"


@dataclass
class WatchConfig:
    """Settings shared by every watch manager."""

    backoff: BackoffConfig = field(default_factory=BackoffConfig)
    breaker: BreakerConfig = field(default_factory=BreakerConfig)
    poll_interval: float = 1.0
    subscriber_buffer: int = 256
    stop_timeout: float = 5.0


@dataclass
class APIConfig:
    """Status API configuration."""

    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class K0WatchConfig:
    """Top-level k0watch configuration."""

    watch: WatchConfig = field(default_factory=WatchConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
