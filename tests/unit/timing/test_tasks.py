"""Tests for the timer task queue."""

from __future__ import annotations

import pytest

from danmaku.core.timing.tasks import COMPACT_MIN_SIZE, TaskQueue, TaskQueueClosedError


@pytest.fixture
def queue() -> TaskQueue:
    return TaskQueue("test")


class TestTaskQueue:
    def test_fires_in_time_order(self, queue):
        fired: list[str] = []
        queue.schedule(300, lambda: fired.append("c"))
        queue.schedule(100, lambda: fired.append("a"))
        queue.schedule(200, lambda: fired.append("b"))
        assert queue.run_due(250) == 2
        assert fired == ["a", "b"]
        assert len(queue) == 1
        assert queue.next_fire_ms == 300

    def test_equal_times_fire_fifo(self, queue):
        fired: list[int] = []
        for i in range(5):
            queue.schedule(100, lambda i=i: fired.append(i))
        queue.run_due(100)
        assert fired == [0, 1, 2, 3, 4]

    def test_cancel_key(self, queue):
        fired: list[int] = []
        queue.schedule(100, lambda: fired.append(1), key="a")
        assert queue.cancel_key("a")
        assert not queue.cancel_key("a")
        assert queue.run_due(1000) == 0
        assert fired == []
        assert queue.next_fire_ms is None

    def test_rescheduling_a_key_replaces_it(self, queue):
        fired: list[str] = []
        queue.schedule(100, lambda: fired.append("old"), key=7)
        queue.schedule(200, lambda: fired.append("new"), key=7)
        assert len(queue) == 1
        assert queue.get(7).fire_at_ms == 200
        queue.run_due(1000)
        assert fired == ["new"]
        assert queue.get(7) is None

    def test_task_cancel(self, queue):
        task = queue.schedule(100, lambda: pytest.fail("cancelled task fired"))
        task.cancel()
        assert len(queue) == 0
        assert queue.run_due(100) == 0

    def test_len_counts_live_tasks_through_rekeying(self, queue):
        for i in range(200):
            queue.schedule(1000 + i, lambda: None, key="expiry")
        assert len(queue) == 1
        assert len(queue._heap) <= COMPACT_MIN_SIZE + 1
        assert queue.run_due(5000) == 1
        assert len(queue) == 0

    def test_cancelling_a_fired_task_keeps_count(self, queue):
        task = queue.schedule(100, lambda: None)
        queue.schedule(200, lambda: None)
        queue.run_due(100)
        task.cancel()
        assert len(queue) == 1

    def test_nested_schedule_fires_same_call(self, queue):
        fired: list[str] = []

        def outer() -> None:
            fired.append("outer")
            queue.schedule(150, lambda: fired.append("inner"))

        queue.schedule(100, outer)
        assert queue.run_due(200) == 2
        assert fired == ["outer", "inner"]

    def test_cancel_all(self, queue):
        queue.schedule(100, lambda: None)
        queue.schedule(200, lambda: None, key="x")
        assert queue.cancel_all() == 2
        assert len(queue) == 0
        assert queue.get("x") is None

    def test_closed_queue_rejects_schedule(self, queue):
        queue.schedule(100, lambda: None)
        queue.close()
        assert queue.closed
        assert len(queue) == 0
        with pytest.raises(TaskQueueClosedError, match="test"):
            queue.schedule(200, lambda: None)
