"""Cancellable timer tasks on a min-heap.

Replaces timeout chains with one queue the owner drains on each tick:
``run_due(now)`` fires every live task whose fire time has been reached, in
fire-time order (FIFO for equal times). Cancelled tasks stay in the heap and
are skipped when popped; the heap is compacted once they outnumber live ones.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
import heapq
import itertools
import logging

logger = logging.getLogger(__name__)

COMPACT_MIN_SIZE = 64


class TaskQueueClosedError(RuntimeError):
    """Raised when scheduling onto a closed queue."""

    pass


@dataclass(order=True)
class ScheduledTask:
    """One pending callback.

    Attributes:
        fire_at_ms: Time (in the owning queue's clock) at which to fire.
        seq: Insertion sequence, breaks ties between equal fire times.
        callback: Invoked with no arguments when fired.
        key: Optional identity used for cancel_key().
        cancelled: Set by cancel(); a cancelled task never fires.
        on_cancel: Invoked on the first cancel(); lets the owning queue count live tasks.
    """

    fire_at_ms: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    key: Hashable | None = field(default=None, compare=False)
    cancelled: bool = field(default=False, compare=False)
    on_cancel: Callable[[], None] | None = field(default=None, compare=False, repr=False)

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self.on_cancel is not None:
            self.on_cancel()


class TaskQueue:
    """Min-heap of ScheduledTasks keyed by fire time.

    Each key maps to at most one live task; scheduling a key again cancels the
    previous task for that key.

    Example:
        >>> queue = TaskQueue("expiry")
        >>> _ = queue.schedule(500, lambda: print("fired"), key=7)
        >>> queue.run_due(499)
        0
        >>> queue.run_due(500)
        fired
        1
    """

    def __init__(self, name: str = "tasks") -> None:
        self.name = name
        self._heap: list[ScheduledTask] = []
        self._by_key: dict[Hashable, ScheduledTask] = {}
        self._seq = itertools.count()
        self._live = 0
        self._closed = False

    def __len__(self) -> int:
        return self._live

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def next_fire_ms(self) -> float | None:
        """Fire time of the earliest live task, or None when empty."""
        self._discard_cancelled_head()
        return self._heap[0].fire_at_ms if self._heap else None

    def schedule(
        self,
        fire_at_ms: float,
        callback: Callable[[], None],
        *,
        key: Hashable | None = None,
    ) -> ScheduledTask:
        """Add a task.

        Raises:
            TaskQueueClosedError: If the queue has been closed.
        """
        if self._closed:
            raise TaskQueueClosedError(f"Task queue '{self.name}' is closed")
        if key is not None:
            self.cancel_key(key)
        task = ScheduledTask(
            fire_at_ms=float(fire_at_ms),
            seq=next(self._seq),
            callback=callback,
            key=key,
            on_cancel=self._task_cancelled,
        )
        heapq.heappush(self._heap, task)
        self._live += 1
        if key is not None:
            self._by_key[key] = task
        return task

    def get(self, key: Hashable) -> ScheduledTask | None:
        """Live task registered under ``key``, if any."""
        task = self._by_key.get(key)
        if task is None or task.cancelled:
            return None
        return task

    def cancel_key(self, key: Hashable) -> bool:
        """Cancel the live task registered under ``key``.

        Returns:
            True if a live task was cancelled.
        """
        task = self._by_key.pop(key, None)
        if task is None or task.cancelled:
            return False
        task.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every pending task. Returns how many were live."""
        heap, self._heap = self._heap, []
        self._by_key.clear()
        live = 0
        for task in heap:
            if not task.cancelled:
                task.cancel()
                live += 1
        return live

    def run_due(self, now_ms: float) -> int:
        """Fire every live task with ``fire_at_ms <= now_ms``.

        Tasks scheduled by a callback for a time already reached fire in the
        same call.

        Returns:
            Number of callbacks invoked.
        """
        fired = 0
        while self._heap and self._heap[0].fire_at_ms <= now_ms:
            task = heapq.heappop(self._heap)
            if task.cancelled:
                continue
            if task.key is not None and self._by_key.get(task.key) is task:
                del self._by_key[task.key]
            task.cancelled = True
            self._live -= 1
            task.callback()
            fired += 1
        return fired

    def close(self) -> None:
        """Cancel everything and refuse further scheduling."""
        cancelled = self.cancel_all()
        self._closed = True
        if cancelled:
            logger.debug(f"Task queue '{self.name}' closed with {cancelled} pending tasks")

    def _task_cancelled(self) -> None:
        self._live -= 1
        if len(self._heap) > COMPACT_MIN_SIZE and self._live * 2 < len(self._heap):
            self._heap = [task for task in self._heap if not task.cancelled]
            heapq.heapify(self._heap)

    def _discard_cancelled_head(self) -> None:
        while self._heap and self._heap[0].cancelled:
            heapq.heappop(self._heap)
