"""End-to-end tests for DanmakuSession on a manual host clock."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from danmaku.core.comments.generator import generate_comments
from danmaku.core.comments.models import MotionClass
from danmaku.core.config.models import DanmakuSettings, EngineConfig
from danmaku.core.layout.viewport import Viewport
from danmaku.core.scheduling.driver import AsyncTickDriver
from danmaku.core.scheduling.loop import SessionClosedError
from danmaku.core.session import DanmakuSession
from danmaku.core.timing.manual import ManualClock


def _play(session: DanmakuSession, host: ManualClock, ticks: int, step_ms: float = 100) -> None:
    for _ in range(ticks):
        host.advance(step_ms)
        session.tick()


class TestSessionSetup:
    def test_session_ids(self, make_session):
        assert make_session([]).session_id != make_session([]).session_id
        assert make_session([], session_id="episode-1").session_id == "episode-1"

    def test_config_from_yaml(self, tmp_path: Path, host, viewport):
        path = tmp_path / "danmaku.yaml"
        path.write_text("settings:\n  fontSize: 40\nscheduler:\n  max_catch_up_ms: 1000\n")
        with DanmakuSession([], viewport=viewport, config=path, host_clock=host) as session:
            assert session.settings.font_size == 40
            assert session.config.scheduler.max_catch_up_ms == 1000

    def test_missing_config_path(self, tmp_path: Path, viewport):
        with pytest.raises(FileNotFoundError):
            DanmakuSession([], viewport=viewport, config=tmp_path / "nope.yaml")

    def test_bad_config_type(self, viewport):
        with pytest.raises(TypeError, match="Expected EngineConfig"):
            DanmakuSession([], viewport=viewport, config=42)

    def test_settings_override_config(self, make_session):
        session = make_session([], settings=DanmakuSettings(opacity=0.5))
        assert session.settings.opacity == 0.5
        assert session.snapshot().style.opacity == 0.5

    def test_from_file(self, tmp_path: Path, host, viewport, engine_config):
        path = tmp_path / "comments.json"
        path.write_text(
            json.dumps(
                {
                    "count": 2,
                    "comments": [
                        {"cid": 1, "p": "0.5,1,16777215,[BiliBili]a", "m": "first"},
                        {"cid": 2, "p": "0.6,5,255,user", "m": "second"},
                    ],
                }
            )
        )
        session = DanmakuSession.from_file(
            path, viewport=viewport, config=engine_config, host_clock=host
        )
        assert len(session.loop.schedule) == 2
        session.close()

    def test_custom_estimator(self, make_session, make_comment, host):
        session = make_session([make_comment(1, 0.1)], estimator=lambda text, size: 100.0)
        session.play()
        _play(session, host, 2)
        assert session.snapshot().bullets[0].text_width_px == 100


class TestSessionPlayback:
    def test_playback_scenario(self, make_session, host):
        comments = generate_comments(200, 30, seed=11, reverse_share=0.2)
        session = make_session(comments)
        frames = []
        session.subscribe(frames.append)

        session.play()
        _play(session, host, 100)
        assert len(session.snapshot()) > 0

        session.pause()
        paused = session.snapshot()
        _play(session, host, 20)
        assert session.snapshot().time_ms == paused.time_ms

        session.play()
        session.set_rate(1.5)
        _play(session, host, 50)
        session.seek(5000)
        _play(session, host, 20)

        stats = session.stats
        assert stats.seeks == 1
        assert stats.spawned > 0
        assert len(frames) == 190
        assert session.snapshot().rate == 1.5

    def test_update_settings_merges_dict(self, make_session):
        session = make_session([])
        session.update_settings({"fontSize": 40, "danmakuFilter": 1})
        assert session.settings.font_size == 40
        assert session.settings.source_filter == 1
        assert session.settings.opacity == 0.8
        session.update_settings({"opacity": 0.3})
        assert session.settings.font_size == 40
        assert session.settings.opacity == 0.3

    def test_motion_filter_hides_fixed(self, make_session, make_comment, host):
        session = make_session(
            [make_comment(1, 0.1, motion=MotionClass.TOP), make_comment(2, 0.1)],
        )
        session.update_settings({"danmakuModeFilter": 3})
        session.play()
        _play(session, host, 3)
        assert [b.id for b in session.snapshot().bullets] == [2]

    def test_viewport_change(self, make_session):
        session = make_session([])
        session.set_viewport(Viewport(640, 360))
        assert session.loop.viewport == Viewport(640, 360)

    def test_host_reported_position(self, make_session, make_comment, host):
        session = make_session([make_comment(1, 10.0)])
        session.update_playback(9950, True)
        _play(session, host, 1)
        assert [b.id for b in session.snapshot().bullets] == [1]

    def test_close(self, make_session, make_comment, host):
        with make_session([make_comment(1, 0.1)]) as session:
            session.play()
            _play(session, host, 3)
        assert session.closed
        session.close()
        with pytest.raises(SessionClosedError):
            session.tick()


@pytest.mark.asyncio
async def test_session_driver(make_session, make_comment, host):
    session = make_session([make_comment(1, 0.2)])
    driver = session.driver(interval_ms=50)
    assert isinstance(driver, AsyncTickDriver)
    assert driver.interval_ms == 50

    async def fake_sleep(seconds: float) -> None:
        host.advance(seconds * 1000)
        await asyncio.sleep(0)

    driver = AsyncTickDriver(session.loop, interval_ms=50, sleep=fake_sleep)
    driver.play()
    await driver.run(max_ticks=10)
    assert session.loop.now_ms == 450
    assert len(session.snapshot()) == 1


@pytest.mark.asyncio
async def test_session_close_ends_paused_driver(make_session):
    session = make_session([])
    task = session.driver(interval_ms=50).start()
    await asyncio.sleep(0)
    assert not task.done()

    session.close()
    assert await asyncio.wait_for(task, timeout=1.0) == 0


def test_engine_config_defaults():
    config = EngineConfig()
    assert config.scheduler.tick_interval_ms == 100
    assert config.settings == DanmakuSettings()
