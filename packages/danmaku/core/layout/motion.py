"""Motion maths for scrolling and fixed bullets.

Scrolling bullets are modelled in a direction-relative coordinate ``s``:
``s = 0`` is the entry edge of the screen and ``s`` grows in the direction of
travel, so ScrollLeft and ScrollRight share one set of formulas. A bullet's
leading edge is at ``s = velocity * (t - entry_ms)`` and its trailing edge one
text width behind. It has left the screen once the trailing edge passes
``s = screen_width``.

Velocities here are px per *virtual* ms (video time), so trajectories of
bullets spawned at different playback rates compare directly.
"""

from __future__ import annotations

from dataclasses import dataclass

from danmaku.core.comments.models import MotionClass
from danmaku.core.config.models import AllocatorPolicy
from danmaku.core.utils.math import clamp, safe_div


@dataclass(frozen=True)
class ScrollMotion:
    """Resolved motion of one scrolling comment at one playback rate.

    Attributes:
        velocity_px_s: Screen speed in px per host second.
        travel_px: Total distance (screen + text width + off-screen buffer).
        duration_ms: Host ms to cover ``travel_px``.
    """

    velocity_px_s: float
    travel_px: float
    duration_ms: float

    def velocity_per_virtual_ms(self, rate: float) -> float:
        """Speed in px per virtual ms at ``rate``."""
        return safe_div(self.travel_px, self.duration_ms * rate)


def effective_rate(rate: float, policy: AllocatorPolicy) -> float:
    return max(policy.min_rate, rate)


def scroll_motion(
    text_width: float,
    screen_width: float,
    speed: float,
    rate: float,
    policy: AllocatorPolicy,
) -> ScrollMotion:
    """Compute speed, travel and duration for a scrolling comment.

    Longer text moves slightly faster (``width_speedup`` per screen width of
    text, up to ``width_ratio_cap`` screen widths), and speed scales with the
    playback rate so that the crossing takes the same amount of video time.

    Example:
        >>> motion = scroll_motion(100, 1280, 100, 1.0, AllocatorPolicy())
        >>> round(motion.duration_ms)
        16291
    """
    base = max(policy.min_speed, speed)
    ratio = clamp(safe_div(text_width, max(1.0, screen_width)), 0.0, policy.width_ratio_cap)
    factor = 1.0 + policy.width_speedup * ratio
    velocity = min(base * factor * effective_rate(rate, policy), policy.max_velocity_px_s)
    travel = screen_width + text_width + policy.scroll_buffer_px
    duration = max(policy.min_scroll_duration_ms, round(travel / max(1.0, velocity) * 1000))
    return ScrollMotion(velocity_px_s=velocity, travel_px=travel, duration_ms=float(duration))


def fixed_dwell_ms(rate: float, policy: AllocatorPolicy) -> float:
    """Host ms a top/bottom comment stays on screen.

    Divided by the rate so the dwell covers a constant span of video time.
    """
    return float(
        max(policy.min_fixed_dwell_ms, round(policy.fixed_dwell_ms / effective_rate(rate, policy)))
    )


@dataclass(frozen=True)
class Trajectory:
    """Linear model of a scrolling bullet in virtual time.

    Attributes:
        direction: SCROLL_LEFT or SCROLL_RIGHT.
        entry_ms: Virtual time at which the leading edge is at the entry edge.
        velocity: px per virtual ms.
        width: Text width in px.
    """

    direction: MotionClass
    entry_ms: float
    velocity: float
    width: float

    def lead_at(self, t_ms: float) -> float:
        return self.velocity * (t_ms - self.entry_ms)

    def trail_at(self, t_ms: float) -> float:
        return self.lead_at(t_ms) - self.width

    def exit_ms(self, screen_width: float) -> float:
        """Virtual time at which the trailing edge passes the far screen edge."""
        return self.entry_ms + safe_div(screen_width + self.width, self.velocity)

    def x_extent(self, t_ms: float, screen_width: float) -> tuple[float, float]:
        """Screen-space ``(left, right)`` at ``t_ms``."""
        lead = self.lead_at(t_ms)
        if self.direction == MotionClass.SCROLL_LEFT:
            left = screen_width - lead
            return left, left + self.width
        return lead - self.width, lead


@dataclass(frozen=True)
class GapRule:
    """Minimum same-row spacing between two scrolling bullets."""

    min_gap_px: float
    leader_ratio: float
    follower_ratio: float

    @classmethod
    def from_policy(cls, policy: AllocatorPolicy) -> GapRule:
        return cls(
            min_gap_px=policy.min_gap_px,
            leader_ratio=policy.gap_ratio,
            follower_ratio=policy.new_width_gap_ratio,
        )

    def required(self, leader_width: float, follower_width: float) -> float:
        return max(
            self.min_gap_px,
            leader_width * self.leader_ratio,
            follower_width * self.follower_ratio,
        )


def conflicts(
    candidate: Trajectory,
    occupant: Trajectory,
    screen_width: float,
    gaps: GapRule,
    slack_ms: float = 0.0,
) -> bool:
    """Check whether two bullets in the same row would overlap on screen.

    The pair is ordered by entry time. For bullets moving the same way:

    - entry guard: when the follower enters, the leader's trailing edge must
      be at least the required gap past the entry edge;
    - catch-up guard: if the follower is faster, the gap must not close to
      the threshold before the leader's trailing edge leaves the screen.

    Bullets moving in opposite directions close head-on, so the earlier one
    must have fully cleared the far edge (plus the gap) before the later one
    enters.

    Args:
        candidate: Trajectory being tested.
        occupant: Trajectory already in the row.
        screen_width: Screen width in px.
        gaps: Spacing rule.
        slack_ms: Catch-ups this close to the leader's exit are tolerated.

    Returns:
        True if the candidate must not use this entry time in this row.
    """
    if occupant.entry_ms <= candidate.entry_ms:
        leader, follower = occupant, candidate
    else:
        leader, follower = candidate, occupant

    entry = follower.entry_ms
    gap = gaps.required(leader.width, follower.width)
    trail = leader.trail_at(entry)

    if leader.direction != follower.direction:
        return trail < screen_width + gap

    leader_exit = leader.exit_ms(screen_width)
    if leader_exit <= entry:
        return False

    if trail < gap:
        return True

    closing = follower.velocity - leader.velocity
    if closing > 0:
        catch_ms = entry + (trail - gap) / closing
        if catch_ms < leader_exit - slack_ms:
            return True
    return False
