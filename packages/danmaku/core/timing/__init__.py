"""Playback timing and timers."""

from danmaku.core.timing.clock import ClockAdapter, HostClock, TickWindow, monotonic_ms
from danmaku.core.timing.manual import ManualClock
from danmaku.core.timing.tasks import ScheduledTask, TaskQueue, TaskQueueClosedError

__all__ = [
    "ClockAdapter",
    "HostClock",
    "ManualClock",
    "ScheduledTask",
    "TaskQueue",
    "TaskQueueClosedError",
    "TickWindow",
    "monotonic_ms",
]
