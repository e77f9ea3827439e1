"""Core data structures for k0watch."""

from k0watch.models.config import K0WatchConfig, WatchConfig
from k0watch.models.events import EventAction, EventDelta, EventRecord, InvolvedObject
from k0watch.models.logs import LogLine
from k0watch.models.subscriptions import (
    EventSubscriptionSpec,
    GraphSubscriptionSpec,
    PodLogSubscriptionSpec,
)

__all__ = [
    "EventAction",
    "EventDelta",
    "EventRecord",
    "EventSubscriptionSpec",
    "GraphSubscriptionSpec",
    "InvolvedObject",
    "K0WatchConfig",
    "LogLine",
    "PodLogSubscriptionSpec",
    "WatchConfig",
]
