"""Screen layout, motion maths and text measurement."""

from danmaku.core.layout.motion import (
    GapRule,
    ScrollMotion,
    Trajectory,
    conflicts,
    effective_rate,
    fixed_dwell_ms,
    scroll_motion,
)
from danmaku.core.layout.text_width import (
    TextWidthEstimator,
    WidthCache,
    estimate_text_width,
    is_cjk,
)
from danmaku.core.layout.viewport import LaneLayout, Viewport

__all__ = [
    "GapRule",
    "LaneLayout",
    "ScrollMotion",
    "TextWidthEstimator",
    "Trajectory",
    "Viewport",
    "WidthCache",
    "conflicts",
    "effective_rate",
    "estimate_text_width",
    "fixed_dwell_ms",
    "is_cjk",
    "scroll_motion",
]
