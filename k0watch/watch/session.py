"""WatchSession: one task owning one remote watch connection.

State machine::

    STARTING -> LISTING -> WATCHING -> RECONNECTING -> STARTING ...
        any state --(context cancelled)--> TERMINATED

STARTING asks the circuit breaker for permission; a rejection sleeps for the
poll interval without consuming a backoff step. LISTING establishes the
initial snapshot and opens the stream; failures there record a breaker
failure and sleep ``backoff.next()``. Entering WATCHING records a breaker
success and resets the backoff. A stream error or closure moves to
RECONNECTING and sleeps ``backoff.next()`` before starting over, unless the
session marked itself ``completed`` while consuming a finite stream.
"""

from __future__ import annotations

import asyncio
import itertools
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from enum import StrEnum
from typing import Any, Protocol

import structlog

from k0watch.exceptions import RECONNECT_WORTHY
from k0watch.kube.client import ResourceClient, ResourceKind, WatchEvent, object_resource_version
from k0watch.observability.metrics import watch_reconnects_total
from k0watch.resilience.backoff import Backoff
from k0watch.resilience.circuit_breaker import BreakerState, CircuitBreaker
from k0watch.watch.context import WatchContext

_log = structlog.get_logger(component="watch.session")

_session_ids = itertools.count(1)


def next_session_id(prefix: str) -> str:
    return f"{prefix}-{next(_session_ids)}"


class SessionState(StrEnum):
    STARTING = "starting"
    LISTING = "listing"
    WATCHING = "watching"
    RECONNECTING = "reconnecting"
    TERMINATED = "terminated"


class WatchSession(ABC):
    """Base class for the reconnecting watch loop.

    Subclasses supply the three remote steps: ``_establish`` (initial
    snapshot, returns a resume cursor), ``_open_stream`` and ``_consume``.
    A session is started once and never reused.
    """

    def __init__(
        self,
        *,
        session_id: str,
        subscription_id: str,
        kind: str,
        namespace: str,
        ctx: WatchContext,
        backoff: Backoff,
        breaker: CircuitBreaker,
        poll_interval: float = 1.0,
        manager: str = "watch",
    ) -> None:
        self.session_id = session_id
        self.subscription_id = subscription_id
        self.kind = kind
        self.namespace = namespace
        self.ctx = ctx
        self.backoff = backoff
        self.breaker = breaker
        self.manager = manager
        self._poll_interval = poll_interval
        self.state = SessionState.STARTING
        self.connects = 0
        self.backoff_sleeps = 0
        self.breaker_rejections = 0
        self.last_error: str | None = None
        self.completed = False
        self._log = _log.bind(
            manager=manager,
            session_id=session_id,
            subscription_id=subscription_id,
            kind=kind,
            namespace=namespace or "*",
        )

    @abstractmethod
    async def _establish(self) -> Any:
        """Fetch the initial snapshot and return the cursor to resume from."""

    @abstractmethod
    async def _open_stream(self, cursor: Any) -> AsyncIterator[Any]:
        """Open the streaming connection from ``cursor``."""

    @abstractmethod
    async def _consume(self, stream: AsyncIterator[Any]) -> None:
        """Process items until the stream ends. Errors propagate."""

    async def run(self) -> None:
        try:
            await self._loop()
        except asyncio.CancelledError:
            self._log.debug("session_cancelled")
        finally:
            self._transition(SessionState.TERMINATED)

    async def _loop(self) -> None:
        while not self.ctx.cancelled:
            self._transition(SessionState.STARTING)
            if not self.breaker.allow():
                self.breaker_rejections += 1
                self._log.debug("session_breaker_rejected", retry_after=self.breaker.retry_after())
                await self.ctx.sleep(self._poll_interval)
                continue

            # allow() only passes a non-closed breaker for the single half-open trial.
            holds_trial = self.breaker.state is not BreakerState.CLOSED
            self._transition(SessionState.LISTING)
            try:
                cursor = await self._establish()
                stream = await self._open_stream(cursor)
            except asyncio.CancelledError:
                if holds_trial:
                    self.breaker.release_trial()
                raise
            except Exception as exc:
                self.breaker.record_failure()
                if not await self._reconnect_sleep("connect", exc):
                    return
                continue

            self._transition(SessionState.WATCHING)
            self.connects += 1
            self.breaker.record_success()
            self.backoff.reset()
            self._log.info("session_watching", connects=self.connects)

            error: Exception | None = None
            try:
                await self._consume(stream)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = exc
            finally:
                await self._close_stream(stream)

            if self.ctx.cancelled:
                return
            if error is None and self.completed:
                self._log.info("session_completed", connects=self.connects)
                return
            self._transition(SessionState.RECONNECTING)
            if error is not None:
                self.breaker.record_failure()
            if not await self._reconnect_sleep("stream_error" if error else "stream_closed", error):
                return

    async def _reconnect_sleep(self, reason: str, exc: Exception | None) -> bool:
        delay = self.backoff.next()
        self.backoff_sleeps += 1
        self.last_error = str(exc) if exc is not None else None
        watch_reconnects_total.labels(manager=self.manager, kind=self.kind, reason=reason).inc()
        fields = {"reason": reason, "attempt": self.backoff.attempt, "delay": round(delay, 3)}
        if exc is None:
            self._log.info("session_reconnecting", **fields)
        elif isinstance(exc, RECONNECT_WORTHY):
            self._log.warning("session_reconnecting", error=str(exc), error_type=type(exc).__name__, **fields)
        else:
            self._log.error("session_reconnecting", error=str(exc), error_type=type(exc).__name__, **fields)
        return await self.ctx.sleep(delay)

    async def _close_stream(self, stream: Any) -> None:
        aclose = getattr(stream, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as exc:
            self._log.debug("session_stream_close_failed", error=str(exc))

    def _transition(self, state: SessionState) -> None:
        if state is self.state:
            return
        self._log.debug("session_state", previous=self.state.value, state=state.value)
        self.state = state


class WatchHandler(Protocol):
    """Receives the normalised output of a ResourceWatchSession."""

    def on_list(self, session: ResourceWatchSession, objects: list[dict[str, Any]]) -> None: ...

    def on_event(self, session: ResourceWatchSession, event: WatchEvent) -> None: ...


class ResourceWatchSession(WatchSession):
    """List+Watch of one resource kind in one namespace ("" means all)."""

    def __init__(
        self,
        client: ResourceClient,
        resource: ResourceKind,
        handler: WatchHandler,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("kind", resource.kind)
        super().__init__(**kwargs)
        self.client = client
        self.resource = resource
        self.handler = handler
        self.resource_version = ""

    def _resource_kind(self) -> ResourceKind:
        return self.resource

    async def _establish(self) -> str:
        result = await self.client.list(self._resource_kind(), self.namespace)
        self.resource_version = result.resource_version
        self.handler.on_list(self, result.objects)
        return result.resource_version

    async def _open_stream(self, cursor: str) -> AsyncIterator[WatchEvent]:
        return await self.client.watch(self._resource_kind(), self.namespace, cursor)

    async def _consume(self, stream: AsyncIterator[WatchEvent]) -> None:
        async for event in stream:
            rv = object_resource_version(event.object)
            if rv:
                self.resource_version = rv
            self.handler.on_event(self, event)
