"""Scheduling loop and its asyncio driver."""

from danmaku.core.scheduling.driver import AsyncTickDriver
from danmaku.core.scheduling.loop import (
    LoopStats,
    SchedulingLoop,
    SessionClosedError,
    SnapshotSubscriber,
)

__all__ = [
    "AsyncTickDriver",
    "LoopStats",
    "SchedulingLoop",
    "SessionClosedError",
    "SnapshotSubscriber",
]
