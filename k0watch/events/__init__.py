"""Namespace event streaming with a one-time API-version fallback."""

from k0watch.events.manager import EventManager, EventWatchSession
from k0watch.events.normalize import matches_filters, normalize_event

__all__ = ["EventManager", "EventWatchSession", "matches_filters", "normalize_event"]
