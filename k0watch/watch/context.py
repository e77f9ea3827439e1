"""Hierarchical cancellation scope for watch tasks.

A WatchContext is cancelled explicitly or through its parent. Cancelling a
scope cancels every descendant, runs its done callbacks once and wakes any
``wait()``/``sleep()`` callers so blocked tasks return promptly.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

_log = structlog.get_logger(component="watch.context")


class WatchContext:
    """Cancellation scope. Only used from the event loop thread."""

    def __init__(self, name: str = "root", parent: WatchContext | None = None) -> None:
        self.name = name
        self._parent = parent
        self._cancelled = False
        self._event = asyncio.Event()
        self._children: set[WatchContext] = set()
        self._callbacks: list[Callable[[], object]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def child(self, name: str) -> WatchContext:
        """Derive a scope that is cancelled together with this one."""
        ctx = WatchContext(name=name, parent=self)
        if self._cancelled:
            ctx.cancel()
        else:
            self._children.add(ctx)
        return ctx

    def cancel(self) -> None:
        """Cancel this scope and all of its descendants. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        self._event.set()

        children = list(self._children)
        self._children.clear()
        for ctx in children:
            ctx.cancel()

        callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            try:
                cb()
            except Exception as exc:
                _log.error("context_callback_failed", context=self.name, error=str(exc))

        if self._parent is not None:
            self._parent._children.discard(self)

    def add_done_callback(self, cb: Callable[[], object]) -> None:
        """Run ``cb`` on cancellation (immediately if already cancelled)."""
        if self._cancelled:
            cb()
            return
        self._callbacks.append(cb)

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds.

        Returns True when the full delay elapsed and False when the scope was
        cancelled first.
        """
        if self._cancelled:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(delay, 0.0))
        except TimeoutError:
            return True
        return False

    def __repr__(self) -> str:
        return f"WatchContext(name={self.name!r}, cancelled={self._cancelled})"
