"""Asyncio driver that ticks a SchedulingLoop at a fixed cadence."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import contextlib
import logging

from danmaku.core.scheduling.loop import SchedulingLoop

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class AsyncTickDriver:
    """Runs ``loop.tick()`` every ``interval_ms`` while playback runs.

    While paused the driver parks on an event instead of ticking; use the
    driver's own ``play()`` / ``pause()`` / ``update_playback()`` so the
    event tracks the play state. Closing the loop wakes a parked driver so
    ``run()`` returns.

    Example:
        driver = AsyncTickDriver(loop)
        driver.play()
        task = driver.start()
        ...
        await driver.stop()
    """

    def __init__(
        self,
        loop: SchedulingLoop,
        *,
        interval_ms: float | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._loop = loop
        self.interval_ms = interval_ms if interval_ms is not None else loop.policy.tick_interval_ms
        self._sleep = sleep
        self._wake = asyncio.Event()
        if loop.is_playing:
            self._wake.set()
        loop.on_close(self._wake.set)
        self._task: asyncio.Task[int] | None = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def play(self) -> None:
        self._loop.play()
        self._wake.set()

    def pause(self) -> None:
        self._loop.pause()
        self._wake.clear()

    def update_playback(
        self, position_ms: float, is_playing: bool, rate: float | None = None
    ) -> None:
        self._loop.update_playback(position_ms, is_playing, rate)
        if self._loop.is_playing:
            self._wake.set()
        else:
            self._wake.clear()

    async def run(self, max_ticks: int | None = None) -> int:
        """Tick until the loop closes or ``max_ticks`` ticks have run.

        Returns:
            Number of ticks run by this call.
        """
        ran = 0
        while not self._loop.closed and (max_ticks is None or ran < max_ticks):
            if not self._loop.is_playing:
                self._wake.clear()
                await self._wake.wait()
                if self._loop.closed:
                    break
            self._loop.tick()
            ran += 1
            self.ticks += 1
            await self._sleep(self.interval_ms / 1000.0)
        return ran

    def start(self, max_ticks: int | None = None) -> asyncio.Task[int]:
        """Run in a background task on the current event loop."""
        if self.running:
            raise RuntimeError("Tick driver already running")
        self._task = asyncio.create_task(self.run(max_ticks), name="danmaku-tick-driver")
        return self._task

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug(f"Tick driver stopped after {self.ticks} ticks")
