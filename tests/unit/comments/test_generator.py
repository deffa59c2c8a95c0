"""Tests for the seeded comment generator."""

from __future__ import annotations

from danmaku.core.comments.generator import SAMPLE_TEXTS, generate_comments
from danmaku.core.comments.models import MotionClass


def test_seeded_generation_is_reproducible():
    a = generate_comments(50, 60.0, seed=7)
    b = generate_comments(50, 60.0, seed=7)
    assert a == b


def test_shape_of_generated_set():
    comments = generate_comments(100, 30.0, seed=1)
    assert [c.id for c in comments] == list(range(1, 101))
    times = [c.time_seconds for c in comments]
    assert times == sorted(times)
    assert all(0.0 <= t <= 30.0 for t in times)
    assert all(c.text in SAMPLE_TEXTS for c in comments)


def test_motion_shares():
    all_scroll = generate_comments(40, 10.0, seed=3, scroll_share=1.0)
    assert {c.motion_class for c in all_scroll} == {MotionClass.SCROLL_LEFT}

    reversed_scroll = generate_comments(40, 10.0, seed=3, scroll_share=1.0, reverse_share=1.0)
    assert {c.motion_class for c in reversed_scroll} == {MotionClass.SCROLL_RIGHT}

    fixed_only = generate_comments(40, 10.0, seed=3, scroll_share=0.0)
    assert all(c.motion_class.is_fixed for c in fixed_only)


def test_empty():
    assert generate_comments(0, 10.0) == []
