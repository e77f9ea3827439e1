"""Generic watch manager lifecycle.

A manager owns a root WatchContext, a TaskTracker and a registry of
subscriptions. Each subscription gets a child context, a bounded
DeltaStream and the WatchSessions created for it by the concrete manager.
All registry and per-subscription state is mutated under ``self._lock``,
which is never held across an ``await``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar

import structlog

from k0watch.exceptions import (
    InvalidSubscriptionError,
    ManagerStoppedError,
    SubscriptionNotFoundError,
)
from k0watch.kube.client import ResourceClient
from k0watch.models.config import WatchConfig
from k0watch.observability.metrics import deltas_dropped_total, deltas_published_total
from k0watch.resilience.backoff import Backoff
from k0watch.resilience.circuit_breaker import BreakerRegistry
from k0watch.watch.context import WatchContext
from k0watch.watch.session import WatchSession, next_session_id
from k0watch.watch.stream import DeltaStream
from k0watch.watch.tracker import TaskTracker

_log = structlog.get_logger(component="watch.manager")


@dataclass
class Subscription:
    """Live subscription bookkeeping, owned by its manager."""

    subscription_id: str
    spec: Any
    stream: DeltaStream[Any]
    ctx: WatchContext
    sessions: list[WatchSession] = field(default_factory=list)
    tasks: list[asyncio.Task[Any]] = field(default_factory=list)
    last_delivered: int = 0
    state: Any = None


class WatchManager(ABC):
    """Subscribe / unsubscribe / stop contract shared by every manager."""

    name: ClassVar[str] = "watch"
    spec_type: ClassVar[type[Any]]

    def __init__(
        self,
        client: ResourceClient,
        *,
        config: WatchConfig | None = None,
        root: WatchContext | None = None,
        breakers: BreakerRegistry | None = None,
        rng_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._client = client
        self._config = config or WatchConfig()
        self._root = root or WatchContext(name=self.name)
        self._breakers = breakers or BreakerRegistry(
            scope=self._config.breaker.scope,
            threshold=self._config.breaker.threshold,
            cooldown=self._config.breaker.cooldown_seconds,
            name=self.name,
        )
        self._rng_factory = rng_factory
        self._tracker = TaskTracker(self.name)
        self._lock = threading.Lock()
        self._subscriptions: dict[str, Subscription] = {}
        self._stopped = False
        self._log = _log.bind(manager=self.name)

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _create_sessions(self, sub: Subscription) -> list[WatchSession]:
        """Build (but do not start) the sessions feeding ``sub``."""

    def _init_state(self, spec: Any) -> Any:
        """Per-subscription state stored on ``Subscription.state``."""
        return None

    def _on_unsubscribed(self, sub: Subscription) -> None:  # noqa: B027
        """Called under the lock after ``sub`` left the registry."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def root(self) -> WatchContext:
        return self._root

    @property
    def breakers(self) -> BreakerRegistry:
        return self._breakers

    @property
    def tracker(self) -> TaskTracker:
        return self._tracker

    def spec_from_uri(self, uri: str) -> Any:
        return self.spec_type.from_uri(uri)

    async def subscribe(self, spec: Any) -> tuple[str, DeltaStream[Any]]:
        """Start delivering deltas for ``spec``.

        ``spec`` may be a spec instance or a subscription URI. Invalid specs
        raise InvalidSubscriptionError before any task is started.
        """
        spec = self._validate(spec)
        with self._lock:
            if self._stopped or self._root.cancelled:
                raise ManagerStoppedError(f"{self.name} manager is stopped")
            subscription_id = uuid.uuid4().hex
            sub = Subscription(
                subscription_id=subscription_id,
                spec=spec,
                stream=DeltaStream(self._config.subscriber_buffer),
                ctx=self._root.child(f"{self.name}:{subscription_id}"),
                state=self._init_state(spec),
            )
            self._subscriptions[subscription_id] = sub

        for session in self._create_sessions(sub):
            self._start_session(sub, session)

        self._log.info(
            "subscription_created",
            subscription_id=subscription_id,
            spec=repr(spec),
            sessions=len(sub.sessions),
        )
        return subscription_id, sub.stream

    async def unsubscribe(self, subscription_id: str) -> None:
        """Cancel the subscription's sessions and wait for them to exit."""
        with self._lock:
            sub = self._subscriptions.pop(subscription_id, None)
            if sub is not None:
                self._on_unsubscribed(sub)
        if sub is None:
            raise SubscriptionNotFoundError(f"unknown {self.name} subscription {subscription_id!r}")

        sub.ctx.cancel()
        sub.stream.close()
        pending = await self._tracker.wait(self._config.stop_timeout, tasks=sub.tasks)
        if pending:
            self._log.warning(
                "unsubscribe_stragglers",
                subscription_id=subscription_id,
                stragglers=sorted(t.get_name() for t in pending),
            )
        self._log.info("subscription_removed", subscription_id=subscription_id)

    async def stop(self, timeout: float | None = None) -> int:
        """Cancel every session and wait up to ``timeout`` for them to exit.

        Returns the number of tasks still running when the timeout elapsed.
        Safe to call more than once.
        """
        if timeout is None:
            timeout = self._config.stop_timeout
        with self._lock:
            first_stop = not self._stopped
            self._stopped = True
            subs = list(self._subscriptions.values())
            self._subscriptions.clear()
            for sub in subs:
                self._on_unsubscribed(sub)

        self._root.cancel()
        for sub in subs:
            sub.stream.close()

        pending = await self._tracker.wait(timeout)
        if pending:
            self._log.warning(
                "stop_stragglers",
                count=len(pending),
                stragglers=sorted(t.get_name() for t in pending),
                timeout=timeout,
            )
        elif first_stop:
            self._log.info("manager_stopped", subscriptions=len(subs))
        return len(pending)

    def subscription_ids(self) -> list[str]:
        with self._lock:
            return list(self._subscriptions)

    def sessions(self, subscription_id: str) -> list[WatchSession]:
        with self._lock:
            sub = self._subscriptions.get(subscription_id)
            if sub is None:
                raise SubscriptionNotFoundError(f"unknown {self.name} subscription {subscription_id!r}")
            return list(sub.sessions)

    def status(self) -> dict[str, Any]:
        with self._lock:
            subs = list(self._subscriptions.values())
            stopped = self._stopped
        states: dict[str, int] = {}
        for sub in subs:
            for session in sub.sessions:
                states[session.state.value] = states.get(session.state.value, 0) + 1
        return {
            "name": self.name,
            "stopped": stopped,
            "subscriptions": len(subs),
            "sessions_active": self._tracker.active,
            "session_states": states,
            "dropped": sum(sub.stream.dropped for sub in subs),
            "breakers": self._breakers.states(),
        }

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _validate(self, spec: Any) -> Any:
        if isinstance(spec, str):
            return self.spec_from_uri(spec)
        if not isinstance(spec, self.spec_type):
            raise InvalidSubscriptionError(
                f"{self.name} manager expects {self.spec_type.__name__}, got {type(spec).__name__}"
            )
        return spec

    def _session_kwargs(self, sub: Subscription, kind: str, namespace: str) -> dict[str, Any]:
        """Constructor arguments shared by every WatchSession subclass."""
        session_id = next_session_id(self.name)
        backoff_cfg = self._config.backoff
        rng = self._rng_factory() if self._rng_factory is not None else None
        return {
            "session_id": session_id,
            "subscription_id": sub.subscription_id,
            "kind": kind,
            "namespace": namespace,
            "ctx": sub.ctx.child(session_id),
            "backoff": Backoff(
                base=backoff_cfg.base_seconds,
                cap=backoff_cfg.cap_seconds,
                jitter=backoff_cfg.jitter,
                rng=rng,
            ),
            "breaker": self._breakers.breaker_for(kind, namespace),
            "poll_interval": self._config.poll_interval,
            "manager": self.name,
        }

    def _start_session(self, sub: Subscription, session: WatchSession) -> None:
        task = self._tracker.spawn(session.run(), name=f"{self.name}:{session.session_id}")
        session.ctx.add_done_callback(task.cancel)
        task.add_done_callback(lambda _t: self._session_finished(sub, session))
        with self._lock:
            sub.sessions.append(session)
            sub.tasks.append(task)

    def _session_finished(self, sub: Subscription, session: WatchSession) -> None:
        """Task done-callback. Ends ``sub`` once all its sessions completed."""
        self._breakers.release(session.breaker)
        with self._lock:
            if not sub.sessions or not all(s.completed for s in sub.sessions):
                return
            if self._subscriptions.pop(sub.subscription_id, None) is None:
                return
            self._on_unsubscribed(sub)
        sub.stream.close()
        sub.ctx.cancel()
        self._log.info("subscription_completed", subscription_id=sub.subscription_id)

    def _publish(self, sub: Subscription, delta: Any) -> None:
        """Stamp ``delta`` with the next sequence number and hand it over.

        Caller holds the lock. A stream the consumer closed ends the
        subscription.
        """
        if sub.ctx.cancelled:
            return
        sequence = sub.last_delivered + 1
        if dataclasses.is_dataclass(delta):
            delta = dataclasses.replace(delta, sequence=sequence)
        dropped_before = sub.stream.dropped
        if not sub.stream.publish(delta):
            self._discard(sub)
            return
        sub.last_delivered = sequence
        deltas_published_total.labels(manager=self.name).inc()
        if sub.stream.dropped > dropped_before:
            deltas_dropped_total.labels(manager=self.name).inc()
            if sub.stream.dropped == 1 or sub.stream.dropped % 100 == 0:
                self._log.warning(
                    "subscriber_overflow",
                    subscription_id=sub.subscription_id,
                    dropped=sub.stream.dropped,
                )

    def _discard(self, sub: Subscription) -> None:
        # Caller holds the lock.
        if self._subscriptions.pop(sub.subscription_id, None) is None:
            return
        self._on_unsubscribed(sub)
        sub.ctx.cancel()
        self._log.info("subscription_sink_closed", subscription_id=sub.subscription_id)
