"""Generic watcher lifecycle: cancellation scopes, task tracking, sessions and managers."""

from k0watch.watch.context import WatchContext
from k0watch.watch.manager import Subscription, WatchManager
from k0watch.watch.session import ResourceWatchSession, SessionState, WatchHandler, WatchSession
from k0watch.watch.stream import DeltaStream
from k0watch.watch.tracker import TaskTracker

__all__ = [
    "DeltaStream",
    "ResourceWatchSession",
    "SessionState",
    "Subscription",
    "TaskTracker",
    "WatchContext",
    "WatchHandler",
    "WatchManager",
    "WatchSession",
]
