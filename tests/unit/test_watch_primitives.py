"""Tests for WatchContext, TaskTracker and DeltaStream."""

from __future__ import annotations

import asyncio
import time

from k0watch.graph.models import GraphDelta
from k0watch.models.logs import LogLine
from k0watch.watch.context import WatchContext
from k0watch.watch.stream import DeltaStream
from k0watch.watch.tracker import TaskTracker

# ---------------------------------------------------------------------------
# WatchContext
# ---------------------------------------------------------------------------


class TestWatchContext:
    async def test_cancel_propagates_to_children(self) -> None:
        root = WatchContext()
        child = root.child("a")
        grandchild = child.child("b")
        root.cancel()
        assert child.cancelled
        assert grandchild.cancelled

    async def test_cancelling_child_leaves_parent_and_siblings(self) -> None:
        root = WatchContext()
        a = root.child("a")
        b = root.child("b")
        a.cancel()
        assert a.cancelled
        assert not root.cancelled
        assert not b.cancelled

    async def test_child_of_cancelled_scope_starts_cancelled(self) -> None:
        root = WatchContext()
        root.cancel()
        assert root.child("late").cancelled

    async def test_sleep_returns_false_when_cancelled(self) -> None:
        ctx = WatchContext()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, ctx.cancel)
        start = time.monotonic()
        completed = await ctx.sleep(10.0)
        assert completed is False
        assert time.monotonic() - start < 1.0

    async def test_sleep_returns_true_when_elapsed(self) -> None:
        assert await WatchContext().sleep(0.001) is True

    async def test_done_callbacks_run_once(self) -> None:
        ctx = WatchContext()
        calls: list[str] = []
        ctx.add_done_callback(lambda: calls.append("x"))
        ctx.cancel()
        ctx.cancel()
        assert calls == ["x"]

    async def test_callback_added_after_cancel_runs_immediately(self) -> None:
        ctx = WatchContext()
        ctx.cancel()
        calls: list[str] = []
        ctx.add_done_callback(lambda: calls.append("late"))
        assert calls == ["late"]


# ---------------------------------------------------------------------------
# TaskTracker
# ---------------------------------------------------------------------------


class TestTaskTracker:
    async def test_counts_each_task_in_and_out_once(self) -> None:
        tracker = TaskTracker("test")

        async def work() -> None:
            await asyncio.sleep(0)

        for _ in range(5):
            tracker.spawn(work())
        assert tracker.active == 5
        assert await tracker.wait(1.0) == set()
        assert tracker.active == 0
        assert tracker.started == 5
        assert tracker.finished == 5

    async def test_wait_returns_stragglers_on_timeout(self) -> None:
        tracker = TaskTracker("test")
        task = tracker.spawn(asyncio.sleep(10))
        pending = await tracker.wait(0.01)
        assert pending == {task}
        task.cancel()
        assert await tracker.wait(1.0) == set()

    async def test_failed_task_is_still_counted_out(self) -> None:
        tracker = TaskTracker("test")

        async def boom() -> None:
            raise RuntimeError("boom")

        tracker.spawn(boom())
        await tracker.wait(1.0)
        assert tracker.active == 0
        assert tracker.finished == 1


# ---------------------------------------------------------------------------
# DeltaStream
# ---------------------------------------------------------------------------


class TestDeltaStream:
    async def test_delivers_in_order(self) -> None:
        stream: DeltaStream[LogLine] = DeltaStream(8)
        for i in range(3):
            stream.publish(LogLine(line=str(i)))
        assert [item.line for item in stream.drain()] == ["0", "1", "2"]

    async def test_full_stream_drops_oldest_and_flags_next(self) -> None:
        stream: DeltaStream[LogLine] = DeltaStream(2)
        for i in range(4):
            assert stream.publish(LogLine(line=str(i))) is True
        assert stream.dropped == 2
        items = stream.drain()
        assert [item.line for item in items] == ["2", "3"]
        assert items[0].overflowed is True
        assert items[1].overflowed is False

    async def test_publish_never_blocks(self) -> None:
        stream: DeltaStream[GraphDelta] = DeltaStream(1)
        for _ in range(10_000):
            stream.publish(GraphDelta())
        assert len(stream) == 1

    async def test_get_waits_for_publish(self) -> None:
        stream: DeltaStream[LogLine] = DeltaStream(4)
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, stream.publish, LogLine(line="late"))
        item = await asyncio.wait_for(stream.get(), timeout=1.0)
        assert item is not None
        assert item.line == "late"

    async def test_close_ends_iteration_after_drain(self) -> None:
        stream: DeltaStream[LogLine] = DeltaStream(4)
        stream.publish(LogLine(line="a"))
        stream.close()
        assert stream.publish(LogLine(line="b")) is False
        assert [item.line async for item in stream] == ["a"]
        assert await stream.get() is None
