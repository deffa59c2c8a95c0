"""Lane allocation for scrolling and fixed comments.

Scrolling comments probe every row forward in time from the requested
entry time and take the earliest collision-free slot (lowest row on ties).
Top and bottom comments take the first free row at the requested time or
are dropped; they never wait.

All times in this module are virtual (video) ms except ``duration_ms`` on a
Placement, which is the host-ms lifetime the bullet will be given.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import math

from danmaku.core.bullets.models import ActiveBullet, LanePoolKind
from danmaku.core.bullets.registry import BulletRegistry
from danmaku.core.comments.models import MotionClass, TimedComment
from danmaku.core.config.models import AllocatorPolicy, DanmakuSettings
from danmaku.core.lanes.pool import LanePool
from danmaku.core.layout.motion import (
    GapRule,
    Trajectory,
    conflicts,
    effective_rate,
    fixed_dwell_ms,
    scroll_motion,
)
from danmaku.core.layout.text_width import WidthCache
from danmaku.core.layout.viewport import LaneLayout, Viewport

logger = logging.getLogger(__name__)


class DropReason(str, Enum):
    """Why a comment never became a bullet."""

    NO_FIXED_LANE = "no_fixed_lane"
    LOOKAHEAD_EXCEEDED = "lookahead_exceeded"
    OFFSET_EXHAUSTED = "offset_exhausted"


@dataclass(frozen=True)
class Placement:
    """A lane reservation for one comment.

    Attributes:
        motion_class: Movement pattern.
        row: Row index within the pool.
        entry_ms: Virtual time the bullet enters the screen.
        top_px: Vertical position of the row.
        text_width_px: Measured (capped) text width.
        travel_px: Scroll distance; 0 for fixed comments.
        duration_ms: Host ms lifetime at the rate used for placement.
    """

    motion_class: MotionClass
    row: int
    entry_ms: float
    top_px: float
    text_width_px: float
    travel_px: float
    duration_ms: float

    @property
    def pool(self) -> LanePoolKind:
        return LanePoolKind.for_motion(self.motion_class)

    def to_bullet(self, timed: TimedComment) -> ActiveBullet:
        return ActiveBullet(
            comment=timed.comment,
            motion_class=self.motion_class,
            row=self.row,
            top_px=self.top_px,
            text_width_px=self.text_width_px,
            travel_px=self.travel_px,
            duration_ms=self.duration_ms,
            scheduled_at_ms=self.entry_ms,
        )


class LaneAllocator:
    """Assigns rows and entry times against the live bullets in a registry.

    Args:
        registry: Live bullets; used for collision checks.
        widths: Text width cache.
        viewport: Overlay size.
        settings: Display settings (font size, speed, height ratio).
        layout: Row layout; computed from viewport and settings when None.
        policy: Allocation knobs.
        max_width_screens: Text widths are capped at this many screen widths.
    """

    def __init__(
        self,
        registry: BulletRegistry,
        widths: WidthCache,
        viewport: Viewport,
        settings: DanmakuSettings,
        *,
        layout: LaneLayout | None = None,
        policy: AllocatorPolicy | None = None,
        max_width_screens: float = 2.0,
    ) -> None:
        self._registry = registry
        self._widths = widths
        self.policy = policy or AllocatorPolicy()
        self._gaps = GapRule.from_policy(self.policy)
        self._max_width_screens = max_width_screens
        self.viewport = viewport
        self.settings = settings
        self.layout = layout or LaneLayout.compute(viewport, settings)
        self._pools = {
            LanePoolKind.SCROLL: LanePool(LanePoolKind.SCROLL, self.layout.scroll_rows),
            LanePoolKind.TOP: LanePool(LanePoolKind.TOP, self.layout.top_rows),
            LanePoolKind.BOTTOM: LanePool(LanePoolKind.BOTTOM, self.layout.bottom_rows),
        }

    def pool(self, kind: LanePoolKind) -> LanePool:
        return self._pools[kind]

    def configure(
        self, viewport: Viewport, settings: DanmakuSettings, layout: LaneLayout
    ) -> None:
        """Adopt a new viewport / settings / layout, keeping retained rows."""
        self.viewport = viewport
        self.settings = settings
        self.layout = layout
        self._pools[LanePoolKind.SCROLL].resize(layout.scroll_rows)
        self._pools[LanePoolKind.TOP].resize(layout.top_rows)
        self._pools[LanePoolKind.BOTTOM].resize(layout.bottom_rows)

    def reset(self, baseline_ms: float) -> None:
        """Make every row of every pool available from ``baseline_ms``."""
        for pool in self._pools.values():
            pool.reset(baseline_ms)

    def measure(self, text: str) -> float:
        return self._widths.measure(
            text,
            self.settings.font_size,
            max_width=self.viewport.width * self._max_width_screens,
        )

    def place(
        self,
        timed: TimedComment,
        at_ms: float,
        *,
        virtual_now_ms: float,
        host_ms: float,
        rate: float,
    ) -> Placement | DropReason:
        """Reserve a lane for ``timed`` entering no earlier than ``at_ms``.

        Args:
            timed: Comment to place.
            at_ms: Earliest acceptable entry time (virtual ms).
            virtual_now_ms: Current virtual time, for extrapolating live bullets.
            host_ms: Current host time, for live bullet progress.
            rate: Current playback rate.

        Returns:
            The Placement, or the reason the comment is dropped.
        """
        if timed.motion_class.is_fixed:
            return self._place_fixed(timed, at_ms, rate)
        return self._place_scroll(timed, at_ms, virtual_now_ms, host_ms, rate)

    def _place_fixed(
        self, timed: TimedComment, at_ms: float, rate: float
    ) -> Placement | DropReason:
        motion = timed.motion_class
        kind = LanePoolKind.for_motion(motion)
        pool = self._pools[kind]
        rows = range(pool.rows) if kind == LanePoolKind.TOP else range(pool.rows - 1, -1, -1)

        for row in rows:
            if pool.next_available(row) > at_ms:
                continue
            if self._registry.in_row(kind, row):
                continue
            dwell = fixed_dwell_ms(rate, self.policy)
            pool.reserve(row, at_ms + dwell * effective_rate(rate, self.policy))
            return Placement(
                motion_class=motion,
                row=row,
                entry_ms=at_ms,
                top_px=self.layout.top_px(motion, row),
                text_width_px=self.measure(timed.text),
                travel_px=0.0,
                duration_ms=dwell,
            )

        logger.debug(f"Comment {timed.id} dropped: no free {kind.value} lane")
        return DropReason.NO_FIXED_LANE

    def _place_scroll(
        self,
        timed: TimedComment,
        at_ms: float,
        virtual_now_ms: float,
        host_ms: float,
        rate: float,
    ) -> Placement | DropReason:
        rate = effective_rate(rate, self.policy)
        screen_width = self.viewport.width
        width = self.measure(timed.text)
        motion = scroll_motion(width, screen_width, self.settings.speed, rate, self.policy)
        velocity = motion.velocity_per_virtual_ms(rate)
        step = max(self.policy.min_probe_step_ms, width * self.policy.probe_step_ratio / velocity)
        lookahead = self.policy.lookahead_ms
        pool = self._pools[LanePoolKind.SCROLL]

        best_row: int | None = None
        best_ms = math.inf
        for row in range(pool.rows):
            occupants = [
                b.trajectory(virtual_now_ms, host_ms, rate)
                for b in self._registry.in_row(LanePoolKind.SCROLL, row)
            ]
            t = max(pool.next_available(row), at_ms)
            while t - at_ms < lookahead and t < best_ms:
                candidate = Trajectory(timed.motion_class, t, velocity, width)
                if self._fits(candidate, occupants):
                    best_row, best_ms = row, t
                    break
                t += step
            if best_ms == at_ms:
                break

        if best_row is None:
            logger.debug(f"Comment {timed.id} dropped: no scroll lane within {lookahead:.0f}ms")
            return DropReason.LOOKAHEAD_EXCEEDED

        pool.reserve(best_row, best_ms + (width + self.policy.min_gap_px) / velocity)
        return Placement(
            motion_class=timed.motion_class,
            row=best_row,
            entry_ms=best_ms,
            top_px=self.layout.top_px(timed.motion_class, best_row),
            text_width_px=width,
            travel_px=motion.travel_px,
            duration_ms=motion.duration_ms,
        )

    def _fits(self, candidate: Trajectory, occupants: list[Trajectory]) -> bool:
        slack = self.policy.catch_up_slack_ms
        return not any(
            conflicts(candidate, occupant, self.viewport.width, self._gaps, slack)
            for occupant in occupants
        )
