"""PodLogManager: best-effort continuous tail of one container per subscription.

The first connection honours the subscription's ``tail_lines`` and
``since_seconds``. Reconnections resume from the timestamp of the last line
seen, rounded up to whole seconds, so a few lines at the boundary may be
delivered twice. Before any line has been seen a reconnection resumes from
"now".

A ``previous`` subscription reads the last terminated instance's log once;
its stream is closed when that log has been delivered.
"""

from __future__ import annotations

import math
import time
from collections.abc import AsyncIterator, Callable
from datetime import datetime
from typing import Any

from k0watch.exceptions import ConnectionClosedError
from k0watch.kube.client import ResourceClient, parse_timestamp
from k0watch.models.logs import LogLine
from k0watch.models.subscriptions import PodLogSubscriptionSpec
from k0watch.watch.manager import Subscription, WatchManager
from k0watch.watch.session import WatchSession

LOG_KIND = "pods/log"


def split_timestamp(raw: str) -> tuple[datetime | None, str]:
    """Split the RFC 3339 prefix added by ``timestamps=true`` off a line."""
    head, sep, rest = raw.partition(" ")
    if sep:
        ts = parse_timestamp(head)
        if ts is not None:
            return ts, rest
    return None, raw


class PodLogSession(WatchSession):
    def __init__(
        self,
        client: ResourceClient,
        spec: PodLogSubscriptionSpec,
        on_line: Callable[[LogLine], None],
        clock: Callable[[], float] = time.time,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.client = client
        self.spec = spec
        self._on_line = on_line
        self._clock = clock
        self.last_seen: datetime | None = None
        self.lines = 0

    def resume_params(self) -> dict[str, int | None]:
        """``since_seconds`` / ``tail_lines`` for the next connection."""
        if self.connects == 0 or (self.spec.previous and self.last_seen is None):
            return {"since_seconds": self.spec.since_seconds, "tail_lines": self.spec.tail_lines}
        if self.last_seen is None:
            return {"since_seconds": None, "tail_lines": 0}
        elapsed = self._clock() - self.last_seen.timestamp()
        return {"since_seconds": max(1, math.ceil(elapsed)), "tail_lines": None}

    async def _establish(self) -> dict[str, int | None]:
        return self.resume_params()

    async def _open_stream(self, cursor: dict[str, int | None]) -> AsyncIterator[str]:
        self._log.debug("podlog_connecting", **cursor)
        return await self.client.stream_logs(
            self.spec.namespace,
            self.spec.pod,
            self.spec.container,
            since_seconds=cursor["since_seconds"],
            tail_lines=cursor["tail_lines"],
            previous=self.spec.previous,
        )

    async def _consume(self, stream: AsyncIterator[str]) -> None:
        async for raw in stream:
            timestamp, text = split_timestamp(raw)
            if timestamp is not None:
                self.last_seen = timestamp
            self.lines += 1
            self._on_line(LogLine(line=text, timestamp=timestamp))
        if self.spec.previous:
            self.completed = True
            return
        raise ConnectionClosedError("log stream closed")


class PodLogManager(WatchManager):
    name = "podlogs"
    spec_type = PodLogSubscriptionSpec

    def __init__(self, *args: Any, clock: Callable[[], float] = time.time, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._clock = clock

    def _create_sessions(self, sub: Subscription) -> list[WatchSession]:
        spec: PodLogSubscriptionSpec = sub.spec

        def on_line(line: LogLine) -> None:
            self._on_line(sub, line)

        return [
            PodLogSession(
                self._client,
                spec,
                on_line,
                clock=self._clock,
                **self._session_kwargs(sub, LOG_KIND, spec.namespace),
            )
        ]

    def _on_line(self, sub: Subscription, line: LogLine) -> None:
        with self._lock:
            if sub.ctx.cancelled:
                return
            self._publish(sub, line)
