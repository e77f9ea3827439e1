"""Structured logging for k0watch.

Every record is a JSON object on stderr carrying ``service`` and ``version``
next to the event, level and UTC ``ts``. Watch sessions bind ``manager``,
``session_id``, ``subscription_id``, ``kind`` and ``namespace`` on top.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from k0watch import __version__

SERVICE_NAME = "k0watch"

# Client libraries that log every request or reconnect at INFO.
_NOISY_LOGGERS = ("kubernetes_asyncio", "aiohttp.access", "uvicorn.access")


def add_service_info(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def setup_logging(level: str = "info") -> None:
    """Configure structlog for JSON output to stderr."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_service_info,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]
