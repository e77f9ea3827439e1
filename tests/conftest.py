"""Shared fixtures for k0watch tests.

Provides a scriptable stand-in for the remote API (``FakeResourceClient``)
so watch sessions and managers can be exercised without a cluster, plus a
fast WatchConfig and a polling helper for asynchronous assertions.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from k0watch.exceptions import ForbiddenError
from k0watch.kube.client import ListResult, ResourceKind, WatchEvent, WatchEventType
from k0watch.models.config import BackoffConfig, BreakerConfig, WatchConfig

_END = object()


# ---------------------------------------------------------------------------
# Fake streams
# ---------------------------------------------------------------------------


class FakeStream:
    """Async iterator fed from the test: push items, end it or fail it."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    def push(self, item: Any) -> None:
        self._queue.put_nowait(item)

    def event(self, event_type: str, obj: dict[str, Any]) -> None:
        self.push(WatchEvent(type=WatchEventType(event_type), object=obj))

    def end(self) -> None:
        self._queue.put_nowait(_END)

    def fail(self, exc: Exception) -> None:
        self._queue.put_nowait(exc)

    def __aiter__(self) -> FakeStream:
        return self

    async def __anext__(self) -> Any:
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Fake remote API
# ---------------------------------------------------------------------------


class FakeResourceClient:
    """In-memory ResourceClient with error injection.

    ``fail_list`` / ``fail_watch`` / ``fail_logs`` are consumed one error per
    call; kinds in ``forbidden`` always raise ForbiddenError. While
    ``list_gate`` is set to an unset Event, ``list`` blocks on it.
    """

    def __init__(self) -> None:
        self.objects: dict[str, list[dict[str, Any]]] = {}
        self.resource_version = 100
        self.fail_list: list[Exception] = []
        self.fail_watch: list[Exception] = []
        self.fail_logs: list[Exception] = []
        self.forbidden: set[ResourceKind] = set()
        self.list_gate: asyncio.Event | None = None
        self.list_calls: list[tuple[ResourceKind, str]] = []
        self.watch_calls: list[tuple[ResourceKind, str, str]] = []
        self.log_calls: list[dict[str, Any]] = []
        self.watches: list[tuple[ResourceKind, FakeStream]] = []
        self.log_streams: list[FakeStream] = []

    def set_objects(self, kind: ResourceKind, objects: list[dict[str, Any]]) -> None:
        self.objects[kind.kind + "/" + kind.api_version] = list(objects)

    def streams_for(self, kind: ResourceKind) -> list[FakeStream]:
        return [stream for k, stream in self.watches if k == kind]

    async def list(self, kind: ResourceKind, namespace: str) -> ListResult:
        self.list_calls.append((kind, namespace))
        if self.list_gate is not None:
            await self.list_gate.wait()
        if kind in self.forbidden:
            raise ForbiddenError(f"{kind} is forbidden", status=403)
        if self.fail_list:
            raise self.fail_list.pop(0)
        objects = self.objects.get(kind.kind + "/" + kind.api_version, [])
        if namespace:
            objects = [o for o in objects if o.get("metadata", {}).get("namespace") == namespace]
        self.resource_version += 1
        return ListResult(objects=list(objects), resource_version=str(self.resource_version))

    async def watch(self, kind: ResourceKind, namespace: str, resource_version: str) -> FakeStream:
        self.watch_calls.append((kind, namespace, resource_version))
        if kind in self.forbidden:
            raise ForbiddenError(f"{kind} is forbidden", status=403)
        if self.fail_watch:
            raise self.fail_watch.pop(0)
        stream = FakeStream()
        self.watches.append((kind, stream))
        return stream

    async def stream_logs(
        self,
        namespace: str,
        pod: str,
        container: str,
        since_seconds: int | None = None,
        tail_lines: int | None = None,
        previous: bool = False,
    ) -> FakeStream:
        self.log_calls.append(
            {
                "namespace": namespace,
                "pod": pod,
                "container": container,
                "since_seconds": since_seconds,
                "tail_lines": tail_lines,
                "previous": previous,
            }
        )
        if self.fail_logs:
            raise self.fail_logs.pop(0)
        stream = FakeStream()
        self.log_streams.append(stream)
        return stream


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client() -> FakeResourceClient:
    return FakeResourceClient()


@pytest.fixture
def fast_config() -> WatchConfig:
    """Millisecond backoff so reconnect paths run quickly."""
    return WatchConfig(
        backoff=BackoffConfig(base_seconds=0.001, cap_seconds=0.01, jitter=0.2),
        breaker=BreakerConfig(threshold=5, cooldown_seconds=0.05, scope="namespace"),
        poll_interval=0.005,
        subscriber_buffer=256,
        stop_timeout=2.0,
    )


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within timeout")
        await asyncio.sleep(0.002)


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """``await wait_until(lambda: cond)`` polls until ``cond`` holds or fails."""
    return _wait_until
