"""Tests for the virtual playback clock and the manual host clock."""

from __future__ import annotations

import pytest

from danmaku.core.timing.clock import ClockAdapter, TickWindow
from danmaku.core.timing.manual import ManualClock


class TestManualClock:
    def test_advance_and_set(self):
        host = ManualClock(10)
        host.advance(5)
        assert host() == 15.0
        host.set(40)
        assert host() == 40.0

    def test_never_moves_backwards(self):
        host = ManualClock(100)
        with pytest.raises(ValueError):
            host.advance(-1)
        with pytest.raises(ValueError):
            host.set(50)


class TestClockAdapter:
    def test_paused_clock_does_not_advance(self, host):
        clock = ClockAdapter(host, initial_ms=1000)
        host.advance(500)
        window = clock.tick()
        assert window == TickWindow(from_ms=1000, to_ms=1000, host_ms=500)
        assert window.span_ms == 0

    def test_play_advances_with_host(self, host):
        clock = ClockAdapter(host)
        clock.play()
        host.advance(250)
        window = clock.tick()
        assert (window.from_ms, window.to_ms) == (0, 250)
        assert clock.is_playing

    def test_rate_scales_time(self, host):
        clock = ClockAdapter(host, rate=2.0)
        clock.play()
        host.advance(100)
        assert clock.tick().to_ms == 200

    def test_rate_change_settles_elapsed_time(self, host):
        clock = ClockAdapter(host)
        clock.play()
        host.advance(100)
        clock.set_rate(2.0)
        host.advance(100)
        assert clock.tick().to_ms == 300

    def test_rate_is_floored(self, host):
        clock = ClockAdapter(host, rate=0.01, min_rate=0.25)
        assert clock.rate == 0.25
        assert clock.set_rate(0.1) == 0.25

    def test_pause_freezes_time(self, host):
        clock = ClockAdapter(host)
        clock.play()
        host.advance(100)
        clock.pause()
        host.advance(1000)
        assert clock.tick().to_ms == 100
        assert not clock.is_playing

    def test_sync_reports_drift(self, host):
        clock = ClockAdapter(host)
        clock.play()
        host.advance(100)
        assert clock.sync(130) == pytest.approx(30)
        assert clock.now_ms == 130
        assert clock.sync(50) == pytest.approx(-80)

    def test_play_does_not_count_paused_time(self, host):
        clock = ClockAdapter(host)
        host.advance(1000)
        clock.play()
        host.advance(10)
        assert clock.tick().to_ms == 10
