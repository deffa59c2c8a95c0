"""Shared pytest fixtures for danmaku tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator

import pytest

from danmaku.core.bullets.registry import BulletRegistry
from danmaku.core.comments.models import Comment, MotionClass, TimedComment
from danmaku.core.config.models import DanmakuSettings, EngineConfig
from danmaku.core.lanes.allocator import LaneAllocator
from danmaku.core.layout.text_width import WidthCache
from danmaku.core.layout.viewport import Viewport
from danmaku.core.session import DanmakuSession
from danmaku.core.timing.manual import ManualClock

# ============================================================================
# Clock Fixtures
# ============================================================================


@pytest.fixture
def host() -> ManualClock:
    """Host clock that only moves when a test advances it."""
    return ManualClock()


# ============================================================================
# Config Fixtures
# ============================================================================


@pytest.fixture
def settings() -> DanmakuSettings:
    return DanmakuSettings()


@pytest.fixture
def viewport() -> Viewport:
    """720p overlay: 23 rows at the default font size."""
    return Viewport(1280, 720)


@pytest.fixture
def engine_config() -> EngineConfig:
    """Defaults, without reading a danmaku.yaml from the working directory."""
    return EngineConfig()


# ============================================================================
# Comment Fixtures
# ============================================================================


@pytest.fixture
def make_comment() -> Callable[..., Comment]:
    """Factory for comments with sensible defaults."""

    def _make(
        comment_id: int,
        time_seconds: float,
        text: str = "hello danmaku",
        motion: MotionClass = MotionClass.SCROLL_LEFT,
        source_tag: str = "",
        color_hex: str = "#ffffff",
    ) -> Comment:
        return Comment(
            id=comment_id,
            time_seconds=time_seconds,
            text=text,
            color_hex=color_hex,
            motion_class=motion,
            source_tag=source_tag,
        )

    return _make


@pytest.fixture
def make_timed(make_comment: Callable[..., Comment]) -> Callable[..., TimedComment]:
    """Factory for pipeline-resolved comments at a given ms."""

    def _make(comment_id: int, appear_at_ms: int, **kwargs) -> TimedComment:
        comment = make_comment(comment_id, appear_at_ms / 1000, **kwargs)
        return TimedComment(comment=comment, appear_at_ms=appear_at_ms)

    return _make


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def registry() -> BulletRegistry:
    return BulletRegistry()


@pytest.fixture
def allocator(
    registry: BulletRegistry, viewport: Viewport, settings: DanmakuSettings
) -> LaneAllocator:
    return LaneAllocator(registry, WidthCache(), viewport, settings)


@pytest.fixture
def make_session(
    host: ManualClock, viewport: Viewport, engine_config: EngineConfig
) -> Iterator[Callable[..., DanmakuSession]]:
    """Factory for sessions on the manual host clock; closed at teardown."""
    sessions: list[DanmakuSession] = []

    def _make(comments: list[Comment], **kwargs) -> DanmakuSession:
        kwargs.setdefault("viewport", viewport)
        kwargs.setdefault("config", engine_config)
        session = DanmakuSession(comments, host_clock=host, **kwargs)
        sessions.append(session)
        return session

    yield _make
    for session in sessions:
        session.close()
