"""Tests for per-row lane availability."""

from __future__ import annotations

import pytest

from danmaku.core.bullets.models import LanePoolKind
from danmaku.core.lanes.pool import LanePool


class TestLanePool:
    def test_starts_at_baseline(self):
        pool = LanePool(LanePoolKind.SCROLL, rows=3, baseline_ms=500)
        assert len(pool) == pool.rows == 3
        assert pool.availability() == (500, 500, 500)

    def test_reservations_only_move_forward(self):
        pool = LanePool(LanePoolKind.SCROLL, rows=2)
        pool.reserve(0, 4000)
        pool.reserve(0, 1000)
        assert pool.next_available(0) == 4000
        assert pool.next_available(1) == 0

    def test_reset_moves_rows_back(self):
        pool = LanePool(LanePoolKind.TOP, rows=2)
        pool.reserve(0, 9000)
        pool.reset(2000)
        assert pool.baseline_ms == 2000
        assert pool.availability() == (2000, 2000)

    def test_resize_keeps_retained_rows(self):
        pool = LanePool(LanePoolKind.BOTTOM, rows=2, baseline_ms=100)
        pool.reserve(1, 5000)
        pool.resize(4)
        assert pool.availability() == (100, 5000, 100, 100)
        pool.resize(1)
        assert pool.availability() == (100,)

    def test_needs_a_row(self):
        with pytest.raises(ValueError):
            LanePool(LanePoolKind.SCROLL, rows=0)
        pool = LanePool(LanePoolKind.SCROLL, rows=1)
        with pytest.raises(ValueError):
            pool.resize(0)
