"""The scheduling loop: turns the comment schedule into live bullets.

Each ``tick()`` advances the virtual clock, retires finished bullets, admits
every comment whose appearance time was crossed, fires deferred spawns and
publishes a RenderSnapshot. Every comment is admitted at most once between
seeks, whatever the tick cadence.

Two clocks are involved: virtual ms (video position) for the schedule, lane
availability and deferred spawns; host ms for bullet lifetimes. A bullet
that enters late is spawned with a start offset so its position matches
where it would have been had it entered on time.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
import logging

from danmaku.core.bullets.models import RenderSnapshot, RenderStyle
from danmaku.core.bullets.registry import BulletRegistry
from danmaku.core.comments.models import Comment, TimedComment
from danmaku.core.comments.pipeline import Schedule, build_schedule
from danmaku.core.config.models import (
    DanmakuSettings,
    LayoutPolicy,
    PipelinePolicy,
    SchedulerPolicy,
)
from danmaku.core.lanes.allocator import DropReason, LaneAllocator, Placement
from danmaku.core.layout.motion import effective_rate
from danmaku.core.layout.viewport import LaneLayout, Viewport
from danmaku.core.timing.clock import ClockAdapter
from danmaku.core.timing.tasks import TaskQueue

logger = logging.getLogger(__name__)

SnapshotSubscriber = Callable[[RenderSnapshot], None]


class SessionClosedError(RuntimeError):
    """Raised when a closed scheduling loop is used."""

    pass


@dataclass
class LoopStats:
    """Running counters for one loop.

    Attributes:
        spawned: Bullets that went on screen.
        deferred: Spawns postponed to a later entry time.
        skipped: Comments too far behind the playhead to show.
        seeks: Seeks handled (explicit or detected).
        dropped: Comments with no lane, by DropReason value.
    """

    spawned: int = 0
    deferred: int = 0
    skipped: int = 0
    seeks: int = 0
    dropped: Counter[str] = field(default_factory=Counter)

    @property
    def dropped_total(self) -> int:
        return sum(self.dropped.values())

    def as_dict(self) -> dict[str, object]:
        return {
            "spawned": self.spawned,
            "deferred": self.deferred,
            "skipped": self.skipped,
            "seeks": self.seeks,
            "dropped": dict(self.dropped),
        }


class SchedulingLoop:
    """Drives comments through the allocator into the registry.

    Args:
        comments: Authored comments for the session.
        clock: Virtual clock (owns play state and rate).
        registry: Live bullets.
        allocator: Lane allocator bound to ``registry``.
        settings: Initial display settings.
        viewport: Initial overlay size.
        policy: Tick, catch-up and seek knobs.
        pipeline_policy: Density knobs for schedule rebuilds.
        layout_policy: Row layout knobs for settings / viewport changes.
    """

    def __init__(
        self,
        comments: Sequence[Comment],
        clock: ClockAdapter,
        registry: BulletRegistry,
        allocator: LaneAllocator,
        *,
        settings: DanmakuSettings,
        viewport: Viewport,
        policy: SchedulerPolicy | None = None,
        pipeline_policy: PipelinePolicy | None = None,
        layout_policy: LayoutPolicy | None = None,
    ) -> None:
        self.policy = policy or SchedulerPolicy()
        self._pipeline_policy = pipeline_policy or PipelinePolicy()
        self._layout_policy = layout_policy or LayoutPolicy()
        self._comments = list(comments)
        self._clock = clock
        self._registry = registry
        self._allocator = allocator
        self._settings = settings
        self._viewport = viewport
        self._spawns = TaskQueue("deferred-spawns")
        self._processed: set[int] = set()
        self._subscribers: list[SnapshotSubscriber] = []
        self._close_callbacks: list[Callable[[], None]] = []
        self._host_ms = clock.host_now()
        self._closed = False
        self.stats = LoopStats()
        self._allocator.reset(clock.now_ms)
        self._schedule = self._build_schedule()

    # =========================================================================
    # State
    # =========================================================================

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def now_ms(self) -> float:
        return self._clock.now_ms

    @property
    def is_playing(self) -> bool:
        return self._clock.is_playing

    @property
    def rate(self) -> float:
        return self._clock.rate

    @property
    def schedule(self) -> Schedule:
        return self._schedule

    @property
    def settings(self) -> DanmakuSettings:
        return self._settings

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def pending_spawns(self) -> int:
        return len(self._spawns)

    def is_processed(self, comment_id: int) -> bool:
        return comment_id in self._processed

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError("Scheduling loop is closed")

    def _build_schedule(self) -> Schedule:
        return build_schedule(
            self._comments,
            self._settings,
            self._viewport,
            playback_rate=self._clock.rate,
            policy=self._pipeline_policy,
            min_rate=self._allocator.policy.min_rate,
        )

    # =========================================================================
    # Tick
    # =========================================================================

    def tick(self) -> RenderSnapshot:
        """Advance one step and publish the resulting frame.

        Raises:
            SessionClosedError: If the loop has been closed.
        """
        self._ensure_open()
        window = self._clock.tick()
        self._host_ms = window.host_ms
        self._registry.advance(window.host_ms)
        if self._clock.is_playing and window.to_ms > window.from_ms:
            self._process_window(window.from_ms, window.to_ms)
        self._spawns.run_due(window.to_ms)

        snapshot = self.snapshot()
        self._publish(snapshot)
        return snapshot

    def _process_window(self, from_ms: float, to_ms: float) -> None:
        catch_up = to_ms - from_ms >= self.policy.large_window_ms
        for timed in self._schedule.window(from_ms, to_ms):
            if timed.id in self._processed:
                continue
            self._admit(timed, catch_up=catch_up)

    def _max_offset_ms(self, timed: TimedComment, rate: float) -> float:
        """Longest start offset (host ms) a late comment may be given."""
        if timed.motion_class.is_fixed:
            return self.policy.fixed_max_offset_ms / rate
        width = self._allocator.measure(timed.text)
        travel = self._viewport.width + width + self._allocator.policy.scroll_buffer_px
        crossing_ms = travel / (self._settings.speed * rate) * 1000
        return (
            max(self.policy.scroll_min_offset_base_ms, crossing_ms)
            - self.policy.scroll_offset_margin_ms
        )

    def _admit(self, timed: TimedComment, *, catch_up: bool) -> None:
        self._processed.add(timed.id)
        now = self._clock.now_ms
        rate = effective_rate(self._clock.rate, self._allocator.policy)

        if now - timed.appear_at_ms > self.policy.max_catch_up_ms:
            self.stats.skipped += 1
            return

        at_ms = float(timed.appear_at_ms)
        if catch_up:
            at_ms = max(at_ms, now - self._max_offset_ms(timed, rate) * rate)

        result = self._allocator.place(
            timed, at_ms, virtual_now_ms=now, host_ms=self._host_ms, rate=rate
        )
        if isinstance(result, DropReason):
            self.stats.dropped[result.value] += 1
            return

        if result.entry_ms <= now:
            self._spawn(timed, result, now, rate)
        else:
            self._defer(timed, result)

    def _spawn(self, timed: TimedComment, placement: Placement, now: float, rate: float) -> None:
        offset = max(0.0, (now - placement.entry_ms) / rate)
        if self._registry.spawn(placement.to_bullet(timed), self._host_ms, offset):
            self.stats.spawned += 1
        else:
            self.stats.dropped[DropReason.OFFSET_EXHAUSTED.value] += 1

    def _defer(self, timed: TimedComment, placement: Placement) -> None:
        self._registry.reserve(placement.to_bullet(timed))
        comment_id = timed.id
        self._spawns.schedule(
            placement.entry_ms, lambda: self._fire_deferred(comment_id), key=comment_id
        )
        self.stats.deferred += 1

    def _fire_deferred(self, comment_id: int) -> None:
        bullet = self._registry.get(comment_id)
        if bullet is None:
            return
        rate = effective_rate(self._clock.rate, self._allocator.policy)
        offset = max(0.0, (self._clock.now_ms - bullet.scheduled_at_ms) / rate)
        if self._registry.activate(comment_id, self._host_ms, offset):
            self.stats.spawned += 1
        else:
            self.stats.dropped[DropReason.OFFSET_EXHAUSTED.value] += 1

    # =========================================================================
    # Playback control
    # =========================================================================

    def play(self) -> None:
        self._ensure_open()
        self._clock.play()
        self._host_ms = self._clock.host_now()
        self._registry.resume(self._host_ms)

    def pause(self) -> None:
        self._ensure_open()
        self._clock.pause()
        self._host_ms = self._clock.host_now()
        self._registry.pause(self._host_ms)

    def set_rate(self, rate: float) -> float:
        """Change the playback rate.

        Live bullets are rescaled so their remaining video-time lifetime is
        unchanged, and the schedule is rebuilt for the new density buckets.

        Returns:
            The effective (floored) rate.
        """
        self._ensure_open()
        old_rate = self._clock.rate
        new_rate = self._clock.set_rate(rate)
        if new_rate != old_rate:
            self._host_ms = self._clock.host_now()
            self._registry.rescale(old_rate, new_rate, self._host_ms)
            self._schedule = self._build_schedule()
            logger.info(f"Playback rate {old_rate} -> {new_rate}")
        return new_rate

    def update_playback(
        self, position_ms: float, is_playing: bool, rate: float | None = None
    ) -> None:
        """Reconcile with the host player's reported state.

        Small drift is corrected silently; a backward jump beyond the
        tolerance or a forward jump beyond the natural limit is a seek. While
        paused any move beyond the tolerance is a seek.

        A small forward correction moves live bullets ahead by the drift, so
        they stay consistent with the lanes, then admits the comments in the
        skipped span immediately.
        """
        self._ensure_open()
        if rate is not None:
            self.set_rate(rate)
        if is_playing and not self._clock.is_playing:
            self.play()
        elif not is_playing and self._clock.is_playing:
            self.pause()

        self._host_ms = self._clock.host_now()
        previous = self._clock.now_ms
        drift = self._clock.sync(position_ms)
        estimate = position_ms - drift
        playing = self._clock.is_playing
        limit = self.policy.max_natural_jump_ms if playing else self.policy.backward_tolerance_ms
        if drift < -self.policy.backward_tolerance_ms or drift > limit:
            logger.info(f"Seek detected: {estimate:.0f}ms -> {position_ms:.0f}ms")
            self.seek(position_ms)
            return
        if drift > 0:
            effective = effective_rate(self._clock.rate, self._allocator.policy)
            self._registry.advance(self._host_ms)
            self._registry.skip(drift / effective, self._host_ms)
        if playing and position_ms > previous:
            self._process_window(previous, position_ms)
            self._spawns.run_due(position_ms)

    def seek(self, position_ms: float) -> None:
        """Jump to ``position_ms``.

        Clears every bullet and pending spawn, resets lane availability and
        the admission memo, then re-admits comments from the last
        ``seek_catch_up_grace_ms`` before the target with catch-up offsets.
        """
        self._ensure_open()
        self._registry.reset()
        self._spawns.cancel_all()
        self._processed.clear()
        self._clock.sync(position_ms)
        self._host_ms = self._clock.host_now()
        self.stats.seeks += 1

        grace_start = max(0.0, position_ms - self.policy.seek_catch_up_grace_ms)
        self._allocator.reset(grace_start)
        for timed in self._schedule.window(grace_start, position_ms):
            self._admit(timed, catch_up=True)
        logger.debug(f"Seek to {position_ms:.0f}ms, {len(self._registry)} bullets restored")

    # =========================================================================
    # Settings and viewport
    # =========================================================================

    def update_settings(self, settings: DanmakuSettings) -> None:
        """Apply new display settings.

        Rebuilds the schedule and lane layout. Live bullets keep their
        geometry; comments already admitted are not admitted again.
        """
        self._ensure_open()
        self._settings = settings
        self._relayout()

    def set_viewport(self, viewport: Viewport) -> None:
        self._ensure_open()
        self._viewport = viewport
        self._relayout()

    def _relayout(self) -> None:
        layout = LaneLayout.compute(self._viewport, self._settings, self._layout_policy)
        self._allocator.configure(self._viewport, self._settings, layout)
        self._schedule = self._build_schedule()

    # =========================================================================
    # Snapshots
    # =========================================================================

    def snapshot(self) -> RenderSnapshot:
        style = RenderStyle(
            opacity=self._settings.opacity,
            font_size=self._settings.font_size,
            font_family=self._settings.font_family,
            font_weight=self._settings.font_weight,
        )
        return RenderSnapshot(
            time_ms=self._clock.now_ms,
            host_ms=self._host_ms,
            playing=self._clock.is_playing,
            rate=self._clock.rate,
            style=style,
            bullets=self._registry.snapshot(self._host_ms, self._viewport.width),
        )

    def subscribe(self, callback: SnapshotSubscriber) -> Callable[[], None]:
        """Receive every published snapshot.

        Returns:
            A function that removes the subscription.
        """
        self._ensure_open()
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def on_close(self, callback: Callable[[], None]) -> None:
        """Call ``callback`` once when the loop closes, or now if it already has."""
        if self._closed:
            callback()
            return
        self._close_callbacks.append(callback)

    def _publish(self, snapshot: RenderSnapshot) -> None:
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Snapshot subscriber failed")

    def close(self) -> None:
        """Stop every timer and release bullets. Idempotent."""
        if self._closed:
            return
        self._spawns.close()
        self._registry.close()
        self._subscribers.clear()
        self._closed = True
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Close callback failed")
        logger.debug(f"Scheduling loop closed: {self.stats.as_dict()}")
