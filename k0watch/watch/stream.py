"""Bounded, drop-oldest delta stream between one producer and one consumer."""

from __future__ import annotations

import asyncio
import dataclasses
from collections import deque
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class DeltaStream(Generic[T]):
    """Subscriber sink that never blocks the producer.

    When the buffer is full the oldest item is evicted, ``dropped`` is
    incremented and the next item handed to the consumer carries
    ``overflowed=True`` so the gap is visible.
    """

    def __init__(self, capacity: int = 256) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._buffer: deque[T] = deque()
        self._ready = asyncio.Event()
        self._closed = False
        self._gap = False
        self.dropped = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._buffer)

    def publish(self, item: T) -> bool:
        """Buffer ``item``. Returns False if the stream is closed.

        Returns whether the item was accepted, not whether something was
        evicted to make room.
        """
        if self._closed:
            return False
        if len(self._buffer) >= self._capacity:
            self._buffer.popleft()
            self.dropped += 1
            self._gap = True
        self._buffer.append(item)
        self._ready.set()
        return True

    def close(self) -> None:
        """Stop accepting items. Buffered items can still be read."""
        self._closed = True
        self._ready.set()

    def get_nowait(self) -> T | None:
        if not self._buffer:
            return None
        item = self._buffer.popleft()
        if not self._buffer and not self._closed:
            self._ready.clear()
        if self._gap:
            self._gap = False
            item = _mark_overflowed(item)
        return item

    async def get(self) -> T | None:
        """Next item, or None once the stream is closed and drained."""
        while True:
            item = self.get_nowait()
            if item is not None:
                return item
            if self._closed:
                return None
            await self._ready.wait()

    def drain(self) -> list[T]:
        items: list[T] = []
        while (item := self.get_nowait()) is not None:
            items.append(item)
        return items

    def __aiter__(self) -> DeltaStream[T]:
        return self

    async def __anext__(self) -> T:
        item = await self.get()
        if item is None:
            raise StopAsyncIteration
        return item


def _mark_overflowed(item: Any) -> Any:
    if dataclasses.is_dataclass(item) and any(f.name == "overflowed" for f in dataclasses.fields(item)):
        return dataclasses.replace(item, overflowed=True)
    return item
