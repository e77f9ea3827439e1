"""EventManager: namespace events republished per subscription.

Events are read from events.k8s.io/v1. The first Forbidden or NotFound from
that API switches the manager to core/v1 for the rest of its lifetime; the
switch is decided once, under the manager lock, and the failing session
retries on the fallback API immediately instead of taking a backoff step.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from k0watch.events.normalize import matches_filters, normalize_event
from k0watch.exceptions import ForbiddenError, NotFoundError
from k0watch.kube.client import CORE_EVENTS, EVENTS_V1, ResourceKind, WatchEvent, WatchEventType
from k0watch.models.events import EventAction, EventDelta, EventRecord
from k0watch.models.subscriptions import EventSubscriptionSpec
from k0watch.watch.manager import Subscription, WatchManager
from k0watch.watch.session import ResourceWatchSession, WatchSession

_log = structlog.get_logger(component="events.manager")

_ACTIONS = {
    WatchEventType.ADDED: EventAction.ADDED,
    WatchEventType.MODIFIED: EventAction.MODIFIED,
    WatchEventType.DELETED: EventAction.DELETED,
}


@dataclass
class _FeedState:
    # event name -> resourceVersion last handed to the subscriber
    delivered: dict[str, str] = field(default_factory=dict)


class _EventFeed:
    def __init__(self, manager: EventManager, sub: Subscription) -> None:
        self._manager = manager
        self._sub = sub

    def on_list(self, session: ResourceWatchSession, objects: list[dict[str, Any]]) -> None:
        self._manager._ingest_list(self._sub, objects)

    def on_event(self, session: ResourceWatchSession, event: WatchEvent) -> None:
        self._manager._ingest_event(self._sub, event)


class EventWatchSession(ResourceWatchSession):
    """Watches whichever event API the manager has settled on."""

    def __init__(self, events: EventManager, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._events = events

    def _resource_kind(self) -> ResourceKind:
        return self._events.api_resource

    async def _establish(self) -> str:
        used = self._resource_kind()
        try:
            return await super()._establish()
        except (ForbiddenError, NotFoundError) as exc:
            if not self._events.fall_back(used, exc):
                raise
        return await super()._establish()

    async def _open_stream(self, cursor: str) -> Any:
        used = self._resource_kind()
        try:
            return await super()._open_stream(cursor)
        except (ForbiddenError, NotFoundError) as exc:
            if not self._events.fall_back(used, exc):
                raise
        # The cursor belongs to the other API; start the new watch from a fresh list.
        return await super()._open_stream(await super()._establish())


class EventManager(WatchManager):
    name = "events"
    spec_type = EventSubscriptionSpec

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._use_events_v1 = True

    @property
    def api_resource(self) -> ResourceKind:
        with self._lock:
            return EVENTS_V1 if self._use_events_v1 else CORE_EVENTS

    @property
    def using_fallback(self) -> bool:
        with self._lock:
            return not self._use_events_v1

    def fall_back(self, failed: ResourceKind, exc: Exception) -> bool:
        """Record that ``failed`` is unusable.

        Returns True when the caller should retry on the fallback API, which
        is the case whenever the primary API was the one that failed.
        """
        if failed != EVENTS_V1:
            return False
        with self._lock:
            switched = self._use_events_v1
            self._use_events_v1 = False
        if switched:
            _log.warning(
                "events_api_fallback",
                failed=str(failed),
                fallback=str(CORE_EVENTS),
                error=str(exc),
                error_type=type(exc).__name__,
            )
        return True

    def status(self) -> dict[str, Any]:
        status = super().status()
        status["api"] = str(self.api_resource)
        return status

    def _init_state(self, spec: EventSubscriptionSpec) -> _FeedState:
        return _FeedState()

    def _create_sessions(self, sub: Subscription) -> list[WatchSession]:
        spec: EventSubscriptionSpec = sub.spec
        return [
            EventWatchSession(
                self,
                self._client,
                self.api_resource,
                _EventFeed(self, sub),
                **self._session_kwargs(sub, "Event", spec.namespace),
            )
        ]

    def _ingest_list(self, sub: Subscription, objects: list[dict[str, Any]]) -> None:
        records = [normalize_event(obj) for obj in objects]
        with self._lock:
            if sub.ctx.cancelled:
                return
            state: _FeedState = sub.state
            current = {r.name for r in records}
            for stale in set(state.delivered) - current:
                del state.delivered[stale]
            for record in records:
                self._deliver(sub, EventAction.ADDED, record)

    def _ingest_event(self, sub: Subscription, event: WatchEvent) -> None:
        record = normalize_event(event.object)
        action = _ACTIONS[event.type]
        with self._lock:
            if sub.ctx.cancelled:
                return
            if action is EventAction.DELETED:
                sub.state.delivered.pop(record.name, None)
                if matches_filters(record, sub.spec):
                    self._publish(sub, EventDelta(action=action, event=record))
                return
            self._deliver(sub, action, record)

    def _deliver(self, sub: Subscription, action: EventAction, record: EventRecord) -> None:
        # Caller holds the lock.
        state: _FeedState = sub.state
        if record.resource_version and state.delivered.get(record.name) == record.resource_version:
            return
        state.delivered[record.name] = record.resource_version
        if matches_filters(record, sub.spec):
            self._publish(sub, EventDelta(action=action, event=record))
