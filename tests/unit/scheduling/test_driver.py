"""Tests for the asyncio tick driver."""

from __future__ import annotations

import asyncio

import pytest

from danmaku.core.bullets.registry import BulletRegistry
from danmaku.core.lanes.allocator import LaneAllocator
from danmaku.core.layout.text_width import WidthCache
from danmaku.core.scheduling.driver import AsyncTickDriver
from danmaku.core.scheduling.loop import SchedulingLoop
from danmaku.core.timing.clock import ClockAdapter


@pytest.fixture
def loop(host, viewport, settings, make_comment) -> SchedulingLoop:
    registry = BulletRegistry()
    return SchedulingLoop(
        [make_comment(1, 0.2)],
        ClockAdapter(host),
        registry,
        LaneAllocator(registry, WidthCache(), viewport, settings),
        settings=settings,
        viewport=viewport,
    )


@pytest.fixture
def fake_sleep(host):
    """Advances the host clock instead of waiting, then yields once."""

    async def _sleep(seconds: float) -> None:
        host.advance(seconds * 1000)
        await asyncio.sleep(0)

    return _sleep


@pytest.mark.asyncio
async def test_run_ticks_at_interval(loop, fake_sleep):
    driver = AsyncTickDriver(loop, interval_ms=100, sleep=fake_sleep)
    driver.play()
    assert await driver.run(max_ticks=5) == 5
    assert driver.ticks == 5
    assert loop.now_ms == 400
    assert len(loop.snapshot()) == 1


@pytest.mark.asyncio
async def test_default_interval_from_policy(loop):
    assert AsyncTickDriver(loop).interval_ms == loop.policy.tick_interval_ms


@pytest.mark.asyncio
async def test_paused_driver_waits_for_play(loop, fake_sleep):
    driver = AsyncTickDriver(loop, interval_ms=100, sleep=fake_sleep)
    task = driver.start(max_ticks=3)
    for _ in range(5):
        await asyncio.sleep(0)
    assert driver.ticks == 0
    assert driver.running

    driver.play()
    assert await task == 3
    assert not driver.running


@pytest.mark.asyncio
async def test_update_playback_pauses_driver(loop, fake_sleep):
    driver = AsyncTickDriver(loop, interval_ms=100, sleep=fake_sleep)
    driver.update_playback(0, True)
    task = driver.start()
    for _ in range(3):
        await asyncio.sleep(0)
    driver.update_playback(loop.now_ms, False)
    for _ in range(3):
        await asyncio.sleep(0)
    ticks = driver.ticks
    for _ in range(3):
        await asyncio.sleep(0)
    assert driver.ticks == ticks
    assert not task.done()
    await driver.stop()


@pytest.mark.asyncio
async def test_start_twice_and_stop(loop, fake_sleep):
    driver = AsyncTickDriver(loop, interval_ms=100, sleep=fake_sleep)
    driver.play()
    driver.start()
    with pytest.raises(RuntimeError, match="already running"):
        driver.start()
    await asyncio.sleep(0)
    await driver.stop()
    assert not driver.running
    assert driver.ticks > 0
    await driver.stop()


@pytest.mark.asyncio
async def test_run_stops_when_loop_closes(loop, fake_sleep):
    driver = AsyncTickDriver(loop, interval_ms=100, sleep=fake_sleep)
    driver.play()
    loop.close()
    assert await driver.run() == 0


@pytest.mark.asyncio
async def test_close_while_paused_ends_run(loop, fake_sleep):
    driver = AsyncTickDriver(loop, interval_ms=100, sleep=fake_sleep)
    task = driver.start()
    for _ in range(3):
        await asyncio.sleep(0)
    assert driver.running

    loop.close()
    assert await asyncio.wait_for(task, timeout=1.0) == 0
    assert not driver.running


def test_close_callbacks(loop, caplog):
    calls = []

    def broken() -> None:
        raise RuntimeError("listener gone")

    loop.on_close(broken)
    loop.on_close(lambda: calls.append("first"))
    loop.close()
    loop.close()
    loop.on_close(lambda: calls.append("late"))

    assert calls == ["first", "late"]
    assert "Close callback failed" in caplog.text
