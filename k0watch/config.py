"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from k0watch.models.config import (
    APIConfig,
    BackoffConfig,
    BreakerConfig,
    K0WatchConfig,
    LogConfig,
    WatchConfig,
)

_BREAKER_SCOPES = frozenset({"session", "kind", "namespace", "manager"})


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"K0WATCH_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_jitter(value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"Invalid backoff jitter: {value}. Must be between 0 and 1")
    return value


def _validate_breaker_scope(value: str) -> str:
    if value.lower() not in _BREAKER_SCOPES:
        raise ValueError(f"Invalid breaker scope: {value}. Must be one of {sorted(_BREAKER_SCOPES)}")
    return value.lower()


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> K0WatchConfig:
    """Load configuration from K0WATCH_* environment variables."""
    base = _env_float("BACKOFF_BASE", 1.0, min_val=0.001)
    cap = _env_float("BACKOFF_CAP", 60.0, min_val=base)
    return K0WatchConfig(
        watch=WatchConfig(
            backoff=BackoffConfig(
                base_seconds=base,
                cap_seconds=cap,
                jitter=_validate_jitter(_env_float("BACKOFF_JITTER", 0.2)),
            ),
            breaker=BreakerConfig(
                threshold=_env_int("BREAKER_THRESHOLD", 5, min_val=1, max_val=100),
                cooldown_seconds=_env_float("BREAKER_COOLDOWN", 30.0, min_val=0.0),
                scope=_validate_breaker_scope(_env("BREAKER_SCOPE", "namespace")),
            ),
            poll_interval=_env_float("POLL_INTERVAL", 1.0, min_val=0.01),
            subscriber_buffer=_env_int("SUBSCRIBER_BUFFER", 256, min_val=1, max_val=65536),
            stop_timeout=_env_float("STOP_TIMEOUT", 5.0, min_val=0.0),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
