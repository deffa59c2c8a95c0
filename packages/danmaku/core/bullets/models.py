"""Live bullet state and the read-only render snapshots built from it."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from danmaku.core.comments.models import Comment, MotionClass
from danmaku.core.layout.motion import Trajectory
from danmaku.core.utils.math import clamp, safe_div


class BulletState(str, Enum):
    """Lifecycle of a bullet.

    SCHEDULED bullets hold a lane reservation for a deferred spawn but are
    not on screen yet. Transitions only move forward.
    """

    SCHEDULED = "scheduled"
    SPAWNED = "spawned"
    EXPIRED = "expired"


class LanePoolKind(str, Enum):
    """Lane pool a motion class draws rows from."""

    SCROLL = "scroll"
    TOP = "top"
    BOTTOM = "bottom"

    @classmethod
    def for_motion(cls, motion: MotionClass) -> LanePoolKind:
        if motion == MotionClass.TOP:
            return cls.TOP
        if motion == MotionClass.BOTTOM:
            return cls.BOTTOM
        return cls.SCROLL


@dataclass
class ActiveBullet:
    """One comment placed in a lane.

    Durations are host (wall clock) ms; ``scheduled_at_ms`` is virtual time.
    Progress runs from 0 (entering) to 1 (finished). While running it grows
    linearly from ``anchor_progress`` at ``run_started_ms`` and reaches 1
    after ``remaining_ms``.

    Attributes:
        comment: The authored comment.
        motion_class: Movement pattern.
        row: Row index within its lane pool.
        top_px: Vertical position of the row.
        text_width_px: Measured text width.
        travel_px: Distance covered from start to finish (0 for fixed bullets).
        duration_ms: Full lifetime in host ms at the current rate.
        scheduled_at_ms: Virtual time the bullet entered (or will enter).
        state: Lifecycle state.
        anchor_progress: Progress at ``run_started_ms`` (or frozen while paused).
        remaining_ms: Host ms left as of ``run_started_ms``.
        run_started_ms: Host time of the current run segment; None when not running.
    """

    comment: Comment
    motion_class: MotionClass
    row: int
    top_px: float
    text_width_px: float
    travel_px: float
    duration_ms: float
    scheduled_at_ms: float
    state: BulletState = BulletState.SCHEDULED
    anchor_progress: float = 0.0
    remaining_ms: float = 0.0
    run_started_ms: float | None = None

    def __post_init__(self) -> None:
        if self.remaining_ms <= 0:
            self.remaining_ms = self.duration_ms

    @property
    def id(self) -> int:
        return self.comment.id

    @property
    def pool(self) -> LanePoolKind:
        return LanePoolKind.for_motion(self.motion_class)

    @property
    def is_running(self) -> bool:
        return self.state == BulletState.SPAWNED and self.run_started_ms is not None

    def elapsed_ms(self, host_ms: float) -> float:
        """Host ms run since the current segment started (0 when not running)."""
        if not self.is_running:
            return 0.0
        return clamp(host_ms - self.run_started_ms, 0.0, self.remaining_ms)

    def progress_at(self, host_ms: float) -> float:
        if self.state == BulletState.EXPIRED:
            return 1.0
        elapsed = self.elapsed_ms(host_ms)
        if elapsed <= 0:
            return self.anchor_progress
        gained = safe_div(elapsed, self.remaining_ms) * (1.0 - self.anchor_progress)
        return clamp(self.anchor_progress + gained, 0.0, 1.0)

    def remaining_at(self, host_ms: float) -> float:
        return max(0.0, self.remaining_ms - self.elapsed_ms(host_ms))

    def settle(self, host_ms: float) -> None:
        """Fold the running segment into the anchor so it restarts at ``host_ms``."""
        if not self.is_running:
            return
        self.anchor_progress = self.progress_at(host_ms)
        self.remaining_ms = self.remaining_at(host_ms)
        self.run_started_ms = host_ms

    def trajectory(self, virtual_now_ms: float, host_ms: float, rate: float) -> Trajectory:
        """Linear virtual-time model of a scrolling bullet.

        A running bullet is extrapolated from its current progress; a bullet
        that is waiting (scheduled or paused) moves at its nominal speed from
        its entry time.
        """
        if self.is_running or self.anchor_progress > 0:
            progress = self.progress_at(host_ms)
            remaining = self.remaining_at(host_ms)
            if remaining > 0 and progress < 1.0:
                velocity = safe_div(self.travel_px * (1.0 - progress), remaining * rate)
                entry = virtual_now_ms - safe_div(progress * self.travel_px, velocity)
                return Trajectory(self.motion_class, entry, velocity, self.text_width_px)
        velocity = safe_div(self.travel_px, self.duration_ms * rate)
        return Trajectory(self.motion_class, self.scheduled_at_ms, velocity, self.text_width_px)

    def x_px(self, host_ms: float, screen_width: float) -> float:
        """Left edge in px at ``host_ms``.

        Fixed bullets are centred horizontally.
        """
        if self.motion_class.is_fixed:
            return (screen_width - self.text_width_px) / 2.0
        distance = self.progress_at(host_ms) * self.travel_px
        if self.motion_class == MotionClass.SCROLL_LEFT:
            return screen_width - distance
        return distance - self.text_width_px


@dataclass(frozen=True)
class BulletSnapshot:
    """Read-only view of one bullet for rendering."""

    id: int
    text: str
    color_hex: str
    motion_class: MotionClass
    state: BulletState
    row: int
    top_px: float
    x_px: float
    text_width_px: float
    progress: float
    remaining_ms: float
    duration_ms: float

    @classmethod
    def of(cls, bullet: ActiveBullet, host_ms: float, screen_width: float) -> BulletSnapshot:
        return cls(
            id=bullet.id,
            text=bullet.comment.text,
            color_hex=bullet.comment.color_hex,
            motion_class=bullet.motion_class,
            state=bullet.state,
            row=bullet.row,
            top_px=bullet.top_px,
            x_px=bullet.x_px(host_ms, screen_width),
            text_width_px=bullet.text_width_px,
            progress=bullet.progress_at(host_ms),
            remaining_ms=bullet.remaining_at(host_ms),
            duration_ms=bullet.duration_ms,
        )


@dataclass(frozen=True)
class RenderStyle:
    """Style shared by every bullet in a frame."""

    opacity: float
    font_size: int
    font_family: str
    font_weight: str


@dataclass(frozen=True)
class RenderSnapshot:
    """Everything a renderer needs for one frame.

    Attributes:
        time_ms: Virtual (video) time of the frame.
        host_ms: Host clock reading of the frame.
        playing: Whether playback is running.
        rate: Effective playback rate.
        style: Shared text style.
        bullets: Visible bullets, in spawn order.
    """

    time_ms: float
    host_ms: float
    playing: bool
    rate: float
    style: RenderStyle
    bullets: tuple[BulletSnapshot, ...]

    def __len__(self) -> int:
        return len(self.bullets)
