"""Seeded synthetic comment sets for demos and load testing."""

from __future__ import annotations

import numpy as np

from danmaku.core.comments.models import Comment, MotionClass

SAMPLE_TEXTS: tuple[str, ...] = (
    "这是一条测试弹幕",
    "Hello World!",
    "弹幕测试中...",
    "🎉 庆祝一下",
    "测试滚动弹幕",
    "测试顶部弹幕",
    "测试底部弹幕",
    "这是一条很长的弹幕用来测试文字宽度计算功能",
    "Short",
    "Medium length text",
    "Very long text that should wrap or be truncated properly",
    "中文混合English",
    "数字测试：1234567890",
)

SAMPLE_COLORS: tuple[str, ...] = (
    "#ffffff",
    "#ff0000",
    "#00ff00",
    "#0000ff",
    "#ffff00",
    "#ff00ff",
    "#00ffff",
)

# Source tag templates: BiliBili, Gamer, DandanPlay and plain viewers
SAMPLE_SOURCES: tuple[str, ...] = ("[BiliBili]user{i}", "[Gamer]user{i}", "[user{i}]", "user{i}")


def generate_comments(
    count: int,
    duration_seconds: float,
    *,
    seed: int | None = None,
    scroll_share: float = 0.7,
    reverse_share: float = 0.0,
) -> list[Comment]:
    """Generate ``count`` random comments spread over ``duration_seconds``.

    Args:
        count: Number of comments.
        duration_seconds: Comments are uniformly spread over [0, duration).
        seed: RNG seed for reproducible sets.
        scroll_share: Probability that a comment scrolls; the rest split
            evenly between top and bottom.
        reverse_share: Share of scrolling comments that move right.

    Returns:
        Comments sorted by authored time, ids 1..count.
    """
    if count <= 0:
        return []

    rng = np.random.default_rng(seed)
    times = np.sort(rng.uniform(0.0, duration_seconds, size=count))
    text_idx = rng.integers(0, len(SAMPLE_TEXTS), size=count)
    color_idx = rng.integers(0, len(SAMPLE_COLORS), size=count)
    source_idx = rng.integers(0, len(SAMPLE_SOURCES), size=count)
    scroll_roll = rng.random(count)
    reverse_roll = rng.random(count)
    fixed_roll = rng.random(count)

    comments: list[Comment] = []
    for i in range(count):
        if scroll_roll[i] < scroll_share:
            motion = (
                MotionClass.SCROLL_RIGHT
                if reverse_roll[i] < reverse_share
                else MotionClass.SCROLL_LEFT
            )
        else:
            motion = MotionClass.TOP if fixed_roll[i] < 0.5 else MotionClass.BOTTOM

        comments.append(
            Comment(
                id=i + 1,
                time_seconds=round(float(times[i]), 3),
                text=SAMPLE_TEXTS[int(text_idx[i])],
                color_hex=SAMPLE_COLORS[int(color_idx[i])],
                motion_class=motion,
                source_tag=SAMPLE_SOURCES[int(source_idx[i])].format(i=i),
            )
        )
    return comments
