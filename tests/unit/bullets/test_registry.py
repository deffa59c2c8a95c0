"""Tests for live bullet state and the bullet registry."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from danmaku.core.bullets.models import (
    ActiveBullet,
    BulletSnapshot,
    BulletState,
    LanePoolKind,
)
from danmaku.core.bullets.registry import BulletRegistry, DuplicateBulletError
from danmaku.core.comments.models import MotionClass

W = 1280


@pytest.fixture
def make_bullet(make_comment) -> Callable[..., ActiveBullet]:
    """Bullet with a 10s lifetime over 1680px of travel."""

    def _make(
        comment_id: int = 1,
        motion: MotionClass = MotionClass.SCROLL_LEFT,
        row: int = 0,
        scheduled_at_ms: float = 0.0,
    ) -> ActiveBullet:
        return ActiveBullet(
            comment=make_comment(comment_id, scheduled_at_ms / 1000, motion=motion),
            motion_class=motion,
            row=row,
            top_px=row * 28,
            text_width_px=100,
            travel_px=0.0 if motion.is_fixed else 1680,
            duration_ms=10000,
            scheduled_at_ms=scheduled_at_ms,
        )

    return _make


# ============================================================================
# ActiveBullet
# ============================================================================


class TestActiveBullet:
    def test_defaults(self, make_bullet):
        bullet = make_bullet(comment_id=3, motion=MotionClass.TOP, row=2)
        assert bullet.id == 3
        assert bullet.pool == LanePoolKind.TOP
        assert bullet.state == BulletState.SCHEDULED
        assert bullet.remaining_ms == 10000
        assert not bullet.is_running

    def test_pool_for_motion(self):
        assert LanePoolKind.for_motion(MotionClass.SCROLL_RIGHT) == LanePoolKind.SCROLL
        assert LanePoolKind.for_motion(MotionClass.BOTTOM) == LanePoolKind.BOTTOM

    def test_waiting_bullet_trajectory(self, make_bullet):
        bullet = make_bullet(scheduled_at_ms=2000)
        trajectory = bullet.trajectory(virtual_now_ms=0, host_ms=0, rate=1.0)
        assert trajectory.entry_ms == 2000
        assert trajectory.velocity == pytest.approx(0.168)
        assert trajectory.width == 100

    def test_fixed_bullets_are_centred(self, make_bullet):
        assert make_bullet(motion=MotionClass.BOTTOM).x_px(0, W) == 590


# ============================================================================
# Registry lifecycle
# ============================================================================


class TestRegistryLifecycle:
    def test_spawn_and_expire(self, registry, make_bullet):
        bullet = make_bullet()
        assert registry.spawn(bullet, host_ms=0)
        assert bullet.state == BulletState.SPAWNED
        assert 1 in registry
        assert registry.advance(9999) == []
        assert registry.advance(10000) == [1]
        assert bullet.state == BulletState.EXPIRED
        assert len(registry) == 0
        assert registry.expired_total == 1

    def test_duplicate_id_rejected(self, registry, make_bullet):
        registry.spawn(make_bullet(), host_ms=0)
        with pytest.raises(DuplicateBulletError):
            registry.spawn(make_bullet(), host_ms=0)

    def test_reserve_then_activate(self, registry, make_bullet):
        bullet = make_bullet(scheduled_at_ms=3000)
        registry.reserve(bullet)
        assert registry.count(BulletState.SCHEDULED) == 1
        assert registry.snapshot(0, W) == ()
        assert registry.in_row(LanePoolKind.SCROLL, 0) == [bullet]
        assert registry.advance(50000) == []

        assert registry.activate(1, host_ms=3000)
        assert registry.count(BulletState.SPAWNED) == 1
        assert registry.advance(13000) == [1]

    def test_start_offset(self, registry, make_bullet):
        bullet = make_bullet()
        registry.spawn(bullet, host_ms=0, start_offset_ms=2500)
        assert bullet.progress_at(0) == pytest.approx(0.25)
        assert registry.advance(7499) == []
        assert registry.advance(7500) == [1]

    def test_offset_covering_lifetime(self, registry, make_bullet):
        assert not registry.spawn(make_bullet(), host_ms=0, start_offset_ms=10000)
        assert len(registry) == 0

    def test_remove_reports_on_next_advance(self, registry, make_bullet):
        registry.spawn(make_bullet(), host_ms=0)
        assert registry.remove(1)
        assert not registry.remove(1)
        assert registry.advance(0) == [1]

    def test_in_pool_and_row(self, registry, make_bullet):
        registry.spawn(make_bullet(1, row=0), host_ms=0)
        registry.spawn(make_bullet(2, row=1), host_ms=0)
        registry.spawn(make_bullet(3, motion=MotionClass.TOP), host_ms=0)
        assert [b.id for b in registry.in_pool(LanePoolKind.SCROLL)] == [1, 2]
        assert [b.id for b in registry.in_row(LanePoolKind.SCROLL, 1)] == [2]
        assert [b.id for b in registry.in_row(LanePoolKind.TOP, 0)] == [3]

    def test_reset(self, registry, make_bullet):
        bullet = make_bullet()
        registry.spawn(bullet, host_ms=0)
        registry.spawn(make_bullet(2), host_ms=0)
        assert registry.reset() == 2
        assert len(registry) == 0
        assert bullet.state == BulletState.EXPIRED
        assert registry.advance(20000) == []


# ============================================================================
# Pause, resume and rate changes
# ============================================================================


class TestRegistryTiming:
    def test_pause_freezes_progress(self, registry, make_bullet):
        bullet = make_bullet()
        registry.spawn(bullet, host_ms=0)
        registry.pause(4000)
        assert not registry.running
        assert bullet.progress_at(4000) == pytest.approx(0.4)
        assert bullet.progress_at(15000) == pytest.approx(0.4)
        assert bullet.remaining_ms == pytest.approx(6000)
        assert registry.advance(100000) == []
        assert 1 in registry

    def test_resume_restarts_remaining(self, registry, make_bullet):
        registry.spawn(make_bullet(), host_ms=0)
        registry.pause(4000)
        registry.resume(20000)
        assert registry.running
        assert registry.advance(25999) == []
        assert registry.advance(26000) == [1]

    def test_spawn_while_paused_waits_for_resume(self, registry, make_bullet):
        registry.pause(0)
        bullet = make_bullet()
        registry.spawn(bullet, host_ms=0)
        assert not bullet.is_running
        registry.resume(1000)
        assert registry.advance(11000) == [1]

    def test_rescale(self, registry, make_bullet):
        bullet = make_bullet()
        registry.spawn(bullet, host_ms=0)
        registry.rescale(1.0, 2.0, host_ms=4000)
        assert bullet.remaining_ms == pytest.approx(3000)
        assert bullet.duration_ms == pytest.approx(5000)
        assert bullet.progress_at(5500) == pytest.approx(0.7)
        assert registry.advance(6999) == []
        assert registry.advance(7000) == [1]

    def test_rescale_same_rate_is_noop(self, registry, make_bullet):
        bullet = make_bullet()
        registry.spawn(bullet, host_ms=0)
        registry.rescale(1.0, 1.0, host_ms=4000)
        assert bullet.duration_ms == 10000

    def test_skip_moves_spawned_bullets_forward(self, registry, make_bullet):
        leader = make_bullet()
        waiting = make_bullet(comment_id=2, scheduled_at_ms=5000)
        registry.spawn(leader, host_ms=0)
        registry.reserve(waiting)

        assert registry.skip(2000, host_ms=3000) == []
        assert leader.progress_at(3000) == pytest.approx(0.5)
        assert leader.remaining_ms == pytest.approx(5000)
        assert waiting.state == BulletState.SCHEDULED
        assert waiting.remaining_ms == 10000
        assert registry.advance(7999) == []
        assert registry.advance(8000) == [1]

    def test_skip_retires_bullets_it_passes(self, registry, make_bullet):
        registry.spawn(make_bullet(), host_ms=0)
        assert registry.skip(7000, host_ms=4000) == [1]
        assert 1 not in registry
        assert registry.advance(4000) == [1]

    def test_skip_while_paused_keeps_bullets_frozen(self, registry, make_bullet):
        bullet = make_bullet()
        registry.spawn(bullet, host_ms=0)
        registry.pause(4000)
        registry.skip(1000, host_ms=5000)
        assert not bullet.is_running
        assert bullet.progress_at(9000) == pytest.approx(0.5)
        registry.resume(10000)
        assert registry.advance(14999) == []
        assert registry.advance(15000) == [1]


# ============================================================================
# Geometry and snapshots
# ============================================================================


class TestRegistryGeometry:
    def test_scroll_left_positions(self, registry, make_bullet):
        bullet = make_bullet()
        registry.spawn(bullet, host_ms=0)
        assert bullet.x_px(0, W) == W
        assert bullet.x_px(5000, W) == pytest.approx(440)

    def test_scroll_right_positions(self, registry, make_bullet):
        bullet = make_bullet(motion=MotionClass.SCROLL_RIGHT)
        registry.spawn(bullet, host_ms=0)
        assert bullet.x_px(0, W) == -100
        assert bullet.x_px(5000, W) == pytest.approx(740)

    def test_running_trajectory_extrapolates_progress(self, registry, make_bullet):
        bullet = make_bullet()
        registry.spawn(bullet, host_ms=0)
        trajectory = bullet.trajectory(virtual_now_ms=5000, host_ms=5000, rate=1.0)
        assert trajectory.velocity == pytest.approx(0.168)
        assert trajectory.entry_ms == pytest.approx(0)

    def test_snapshot(self, registry, make_bullet):
        registry.spawn(make_bullet(), host_ms=0)
        (snap,) = registry.snapshot(5000, W)
        assert isinstance(snap, BulletSnapshot)
        assert snap.id == 1
        assert snap.text == "hello danmaku"
        assert snap.progress == pytest.approx(0.5)
        assert snap.remaining_ms == pytest.approx(5000)
        assert snap.x_px == pytest.approx(440)

    def test_close_drops_everything(self, registry, make_bullet):
        registry.spawn(make_bullet(), host_ms=0)
        registry.close()
        assert len(registry) == 0
