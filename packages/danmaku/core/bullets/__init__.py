"""Live bullets, their lifecycle and render snapshots."""

from danmaku.core.bullets.models import (
    ActiveBullet,
    BulletSnapshot,
    BulletState,
    LanePoolKind,
    RenderSnapshot,
    RenderStyle,
)
from danmaku.core.bullets.registry import BulletRegistry, DuplicateBulletError

__all__ = [
    "ActiveBullet",
    "BulletRegistry",
    "BulletSnapshot",
    "BulletState",
    "DuplicateBulletError",
    "LanePoolKind",
    "RenderSnapshot",
    "RenderStyle",
]
