"""Countable set of running watch tasks.

``spawn()`` is the single registration for a task and its done-callback the
single deregistration, so every started task is counted out exactly once
regardless of how it ends.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine, Iterable
from typing import Any

import structlog

from k0watch.observability.metrics import sessions_active

_log = structlog.get_logger(component="watch.tracker")


class TaskTracker:
    def __init__(self, name: str = "watch") -> None:
        self._name = name
        self._tasks: set[asyncio.Task[Any]] = set()
        self._started = 0
        self._finished = 0

    @property
    def active(self) -> int:
        return len(self._tasks)

    @property
    def started(self) -> int:
        return self._started

    @property
    def finished(self) -> int:
        return self._finished

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        self._started += 1
        sessions_active.labels(manager=self._name).inc()
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        self._finished += 1
        sessions_active.labels(manager=self._name).dec()
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _log.error(
                "task_failed",
                manager=self._name,
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def wait(
        self,
        timeout: float | None = None,
        tasks: Iterable[asyncio.Task[Any]] | None = None,
    ) -> set[asyncio.Task[Any]]:
        """Wait for ``tasks`` (default: all tracked tasks) to finish.

        Returns the tasks still running when ``timeout`` elapsed.
        """
        pending = {t for t in (self._tasks if tasks is None else tasks) if not t.done()}
        if not pending:
            return set()
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        return set(still_pending)
