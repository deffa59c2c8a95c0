"""Danmaku session: one engine instance per video timeline.

The session owns every engine component (clock, width cache, registry,
allocator, scheduling loop) and tears them all down on ``close()``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
import functools
from pathlib import Path
from typing import Any
from uuid import uuid4

from danmaku.core.bullets.models import RenderSnapshot
from danmaku.core.bullets.registry import BulletRegistry
from danmaku.core.comments.ingest import load_comments
from danmaku.core.comments.models import Comment
from danmaku.core.config.models import DanmakuSettings, EngineConfig
from danmaku.core.lanes.allocator import LaneAllocator
from danmaku.core.layout.text_width import TextWidthEstimator, WidthCache, estimate_text_width
from danmaku.core.layout.viewport import LaneLayout, Viewport
from danmaku.core.scheduling.driver import AsyncTickDriver
from danmaku.core.scheduling.loop import LoopStats, SchedulingLoop, SnapshotSubscriber
from danmaku.core.timing.clock import ClockAdapter, HostClock, monotonic_ms
from danmaku.core.utils.logging import get_logger


class DanmakuSession:
    """Coordinates the engine for one video.

    Example:
        session = DanmakuSession(comments, viewport=Viewport(1280, 720))
        session.play()
        frame = session.tick()
        session.close()
    """

    def __init__(
        self,
        comments: Sequence[Comment],
        *,
        viewport: Viewport,
        config: EngineConfig | Path | str | None = None,
        settings: DanmakuSettings | None = None,
        host_clock: HostClock = monotonic_ms,
        estimator: TextWidthEstimator | None = None,
        start_ms: float = 0.0,
        rate: float = 1.0,
        session_id: str | None = None,
    ):
        """Initialize the session.

        Args:
            comments: Authored comments for the video.
            viewport: Overlay size in px.
            config: EngineConfig instance, path, or None (uses default path).
            settings: Overrides ``config.settings`` when given.
            host_clock: Monotonic ms source; inject a ManualClock in tests.
            estimator: Text width estimator; defaults to the CJK-aware estimate.
            start_ms: Initial video position.
            rate: Initial playback rate.
            session_id: Optional session ID. If None, generates a new UUID.

        Raises:
            FileNotFoundError: If an explicit config path doesn't exist
            ValidationError: If the config is invalid
        """
        self.session_id = session_id or str(uuid4())
        self._log = get_logger(__name__, session_id=self.session_id)
        self.config = self._resolve_config(config)
        settings = settings or self.config.settings
        layout_policy = self.config.layout
        allocator_policy = self.config.allocator

        if estimator is None:
            estimator = functools.partial(
                estimate_text_width,
                cjk_ratio=layout_policy.cjk_width_ratio,
                other_ratio=layout_policy.other_width_ratio,
                padding_px=layout_policy.text_padding_px,
            )

        self.clock = ClockAdapter(
            host_clock, initial_ms=start_ms, rate=rate, min_rate=allocator_policy.min_rate
        )
        self.widths = WidthCache(estimator, max_entries=layout_policy.width_cache_size)
        self.registry = BulletRegistry()
        self.allocator = LaneAllocator(
            self.registry,
            self.widths,
            viewport,
            settings,
            layout=LaneLayout.compute(viewport, settings, layout_policy),
            policy=allocator_policy,
            max_width_screens=layout_policy.max_width_screens,
        )
        self.loop = SchedulingLoop(
            comments,
            self.clock,
            self.registry,
            self.allocator,
            settings=settings,
            viewport=viewport,
            policy=self.config.scheduler,
            pipeline_policy=self.config.pipeline,
            layout_policy=layout_policy,
        )

        self._log.debug(
            f"Session initialized: comments={len(comments)} "
            f"scheduled={len(self.loop.schedule)} viewport={viewport.width}x{viewport.height}"
        )

    @staticmethod
    def _resolve_config(value: Any) -> EngineConfig:
        """Resolve config from value, path, or default.

        Raises:
            TypeError: If value is wrong type
        """
        if value is None:
            return EngineConfig.load_or_default()
        elif isinstance(value, (Path, str)):
            return EngineConfig.load_or_default(Path(value))
        elif isinstance(value, EngineConfig):
            return value
        else:
            raise TypeError(
                f"Expected EngineConfig, Path, str, or None; got {type(value).__name__}"
            )

    @classmethod
    def from_file(
        cls,
        comments_path: Path | str,
        *,
        viewport: Viewport,
        **kwargs: Any,
    ) -> DanmakuSession:
        """Create a session from a comment payload file (JSON)."""
        return cls(load_comments(comments_path), viewport=viewport, **kwargs)

    # Playback -----------------------------------------------------------------

    def tick(self) -> RenderSnapshot:
        return self.loop.tick()

    def play(self) -> None:
        self.loop.play()

    def pause(self) -> None:
        self.loop.pause()

    def seek(self, position_ms: float) -> None:
        self.loop.seek(position_ms)

    def set_rate(self, rate: float) -> float:
        return self.loop.set_rate(rate)

    def update_playback(
        self, position_ms: float, is_playing: bool, rate: float | None = None
    ) -> None:
        self.loop.update_playback(position_ms, is_playing, rate)

    # Settings -----------------------------------------------------------------

    @property
    def settings(self) -> DanmakuSettings:
        return self.loop.settings

    def update_settings(self, settings: DanmakuSettings | dict[str, Any]) -> None:
        """Hot-swap display settings.

        A dict is merged over the current settings, so partial updates using
        either snake_case or host-app keys work.
        """
        if isinstance(settings, dict):
            updates = DanmakuSettings.model_validate(settings).model_dump(exclude_unset=True)
            merged = {**self.settings.model_dump(), **updates}
            settings = DanmakuSettings.model_validate(merged)
        self.loop.update_settings(settings)

    def set_viewport(self, viewport: Viewport) -> None:
        self.loop.set_viewport(viewport)

    # Output -------------------------------------------------------------------

    @property
    def stats(self) -> LoopStats:
        return self.loop.stats

    @property
    def closed(self) -> bool:
        return self.loop.closed

    def snapshot(self) -> RenderSnapshot:
        return self.loop.snapshot()

    def subscribe(self, callback: SnapshotSubscriber) -> Callable[[], None]:
        return self.loop.subscribe(callback)

    def driver(self, interval_ms: float | None = None) -> AsyncTickDriver:
        """Build an asyncio tick driver for this session."""
        return AsyncTickDriver(self.loop, interval_ms=interval_ms)

    def close(self) -> None:
        """Release every timer and bullet, ending any tick driver. Idempotent."""
        if self.loop.closed:
            return
        self.loop.close()
        self.widths.clear()
        self._log.debug("Session closed")

    def __enter__(self) -> DanmakuSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
