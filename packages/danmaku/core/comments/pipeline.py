"""Comment pipeline: authored comments to a time-ordered, schedule-ready sequence.

Steps, in order:

1. Add the per-episode offset to each authored time.
2. Drop comments from excluded sources (``settings.source_filter``).
3. Drop comments of excluded motion families (``settings.motion_filter``).
4. Density limiting per time bucket (``settings.density_level > 0``).
5. Stable sort by appearance time.

The pipeline is a pure function of its inputs; the scheduling loop rebuilds
the schedule whenever settings, viewport or playback rate change.
"""

from __future__ import annotations

import bisect
from collections.abc import Sequence
from dataclasses import dataclass, field
import logging
import math

import numpy as np

from danmaku.core.comments.models import (
    Comment,
    MotionFilter,
    SourceFilter,
    TimedComment,
    motion_filter_bit,
    source_matches,
)
from danmaku.core.config.models import DanmakuSettings, PipelinePolicy
from danmaku.core.layout.viewport import Viewport
from danmaku.core.utils.logging import log_performance

logger = logging.getLogger(__name__)

_SOURCE_BITS = (
    SourceFilter.BILIBILI,
    SourceFilter.GAMER,
    SourceFilter.DANDANPLAY,
    SourceFilter.OTHER,
)


@dataclass
class PipelineStats:
    """Counts of what each pipeline step removed."""

    total: int = 0
    negative_time: int = 0
    source_filtered: int = 0
    motion_filtered: int = 0
    density_dropped: int = 0
    kept: int = 0


@dataclass(frozen=True)
class DensityLimits:
    """Per-bucket admission caps derived from the viewport and settings.

    Attributes:
        bucket_seconds: Width of one time bucket (time to cross the screen).
        visible_rows: Rows that fit the usable height at the font size.
        scroll_cap: Scrolling comments admitted per bucket.
        fixed_cap: Top and bottom comments admitted per bucket (shared).
    """

    bucket_seconds: int
    visible_rows: int
    scroll_cap: int
    fixed_cap: int

    @classmethod
    def compute(
        cls,
        settings: DanmakuSettings,
        viewport: Viewport,
        playback_rate: float,
        policy: PipelinePolicy,
        min_rate: float = 0.25,
    ) -> DensityLimits:
        bucket_seconds = math.ceil(
            viewport.width / max(1.0, settings.speed * max(min_rate, playback_rate))
        )
        usable = viewport.height * settings.height_ratio - policy.height_margin_px
        visible_rows = max(1, math.floor(usable / settings.font_size) - 1)
        scroll_cap = (
            policy.scroll_cap_base - settings.density_level * policy.scroll_cap_step
        ) * visible_rows
        fixed_cap = visible_rows - 1 if visible_rows - 1 > 0 else 1
        return cls(
            bucket_seconds=max(1, bucket_seconds),
            visible_rows=visible_rows,
            scroll_cap=max(1, scroll_cap),
            fixed_cap=fixed_cap,
        )


@dataclass
class Schedule:
    """Pipeline output: admitted comments in ascending appearance order.

    Attributes:
        comments: TimedComments sorted by ``appear_at_ms`` (stable).
        stats: What each step removed.
    """

    comments: list[TimedComment]
    stats: PipelineStats = field(default_factory=PipelineStats)
    _times: list[int] = field(init=False, repr=False, default_factory=list)

    def __post_init__(self) -> None:
        self._times = [c.appear_at_ms for c in self.comments]

    def __len__(self) -> int:
        return len(self.comments)

    def window(self, from_ms: float, to_ms: float) -> list[TimedComment]:
        """Comments with ``from_ms <= appear_at_ms < to_ms``."""
        if to_ms <= from_ms:
            return []
        lo = bisect.bisect_left(self._times, from_ms)
        hi = bisect.bisect_left(self._times, to_ms)
        return self.comments[lo:hi]


def _excluded_by_source(comment: Comment, mask: int) -> bool:
    return any(mask & bit and source_matches(comment.source_tag, bit) for bit in _SOURCE_BITS)


def _excluded_by_motion(comment: Comment, mask: int) -> bool:
    return bool(MotionFilter(mask) & motion_filter_bit(comment.motion_class))


def apply_density_limit(
    comments: Sequence[tuple[float, Comment]],
    limits: DensityLimits,
    grace_seconds: float,
) -> list[tuple[float, Comment]]:
    """Drop comments beyond the per-bucket caps, keeping input order.

    Args:
        comments: ``(appear_at_seconds, comment)`` pairs.
        limits: Caps from DensityLimits.compute.
        grace_seconds: Comments at or before this time are always kept.

    Returns:
        The admitted pairs, in input order.
    """
    if not comments:
        return []

    times = np.fromiter((t for t, _ in comments), dtype=np.float64, count=len(comments))
    buckets = np.ceil(times / limits.bucket_seconds).astype(np.int64)
    in_grace = times <= grace_seconds

    scroll_counts: dict[int, int] = {}
    fixed_counts: dict[int, int] = {}
    kept: list[tuple[float, Comment]] = []

    for i, pair in enumerate(comments):
        if in_grace[i]:
            kept.append(pair)
            continue
        bucket = int(buckets[i])
        if pair[1].motion_class.is_fixed:
            counts, cap = fixed_counts, limits.fixed_cap
        else:
            counts, cap = scroll_counts, limits.scroll_cap
        used = counts.get(bucket, 0)
        if used < cap:
            counts[bucket] = used + 1
            kept.append(pair)
    return kept


@log_performance
def build_schedule(
    comments: Sequence[Comment],
    settings: DanmakuSettings,
    viewport: Viewport,
    *,
    playback_rate: float = 1.0,
    policy: PipelinePolicy | None = None,
    min_rate: float = 0.25,
) -> Schedule:
    """Run the full pipeline.

    Args:
        comments: Authored comments in source order.
        settings: Viewer settings (offset, filters, density level).
        viewport: Overlay size, used for density bucket sizing.
        playback_rate: Current rate; scales the density bucket width.
        policy: Density knobs.
        min_rate: Floor applied to ``playback_rate``.

    Returns:
        Schedule sorted by appearance time.

    Example:
        >>> schedule = build_schedule(comments, DanmakuSettings(), Viewport(1280, 720))
        >>> schedule.window(0, 5000)
    """
    policy = policy or PipelinePolicy()
    stats = PipelineStats(total=len(comments))

    offset = settings.episode_offset_seconds
    staged: list[tuple[float, Comment]] = []
    for comment in comments:
        appear_s = comment.time_seconds + offset
        if appear_s < 0:
            stats.negative_time += 1
            continue
        if settings.source_filter and _excluded_by_source(comment, settings.source_filter):
            stats.source_filtered += 1
            continue
        if settings.motion_filter and _excluded_by_motion(comment, settings.motion_filter):
            stats.motion_filtered += 1
            continue
        staged.append((appear_s, comment))

    if settings.density_level > 0:
        limits = DensityLimits.compute(settings, viewport, playback_rate, policy, min_rate)
        before = len(staged)
        staged = apply_density_limit(staged, limits, policy.grace_seconds)
        stats.density_dropped = before - len(staged)

    # sorted() is stable, so equal times keep source order
    timed = sorted(
        (TimedComment(comment=c, appear_at_ms=round(t * 1000)) for t, c in staged),
        key=lambda tc: tc.appear_at_ms,
    )
    stats.kept = len(timed)

    logger.debug(
        f"Schedule built: kept={stats.kept}/{stats.total} "
        f"source={stats.source_filtered} motion={stats.motion_filtered} "
        f"density={stats.density_dropped}"
    )
    return Schedule(comments=timed, stats=stats)
