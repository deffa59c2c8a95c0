"""Screen geometry and the row layout derived from it."""

from __future__ import annotations

from dataclasses import dataclass
import math

from danmaku.core.comments.models import MotionClass
from danmaku.core.config.models import DanmakuSettings, LayoutPolicy


@dataclass(frozen=True)
class Viewport:
    """Overlay surface size in px."""

    width: float
    height: float

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Viewport must be positive, got {self.width}x{self.height}")


@dataclass(frozen=True)
class LaneLayout:
    """Row capacity and row-to-pixel mapping for one viewport + settings pair.

    Scroll, top and bottom pools currently share the same row count; each
    pool is still sized independently so the allocator never assumes it.

    Attributes:
        line_height: Row pitch in px (font size plus padding).
        usable_height: Height available to comments (screen * height ratio).
        scroll_rows: Rows in the scrolling pool.
        top_rows: Rows in the top pool.
        bottom_rows: Rows in the bottom pool.
    """

    line_height: float
    usable_height: float
    scroll_rows: int
    top_rows: int
    bottom_rows: int

    @classmethod
    def compute(
        cls,
        viewport: Viewport,
        settings: DanmakuSettings,
        policy: LayoutPolicy | None = None,
    ) -> LaneLayout:
        """Derive the layout from the viewport, font size and height ratio.

        Example:
            >>> layout = LaneLayout.compute(Viewport(1280, 720), DanmakuSettings())
            >>> layout.line_height, layout.scroll_rows
            (28, 23)
        """
        policy = policy or LayoutPolicy()
        line_height = settings.font_size + policy.line_padding_px
        usable_height = viewport.height * settings.height_ratio
        rows = max(policy.min_rows, math.floor(usable_height / line_height * policy.row_density))
        return cls(
            line_height=line_height,
            usable_height=usable_height,
            scroll_rows=rows,
            top_rows=rows,
            bottom_rows=rows,
        )

    def rows_for(self, motion: MotionClass) -> int:
        """Number of rows in the pool serving ``motion``."""
        if motion == MotionClass.TOP:
            return self.top_rows
        if motion == MotionClass.BOTTOM:
            return self.bottom_rows
        return self.scroll_rows

    def top_px(self, motion: MotionClass, row: int) -> float:
        """Top edge in px of ``row`` in the pool serving ``motion``.

        Bottom rows count upward from the bottom of the usable area, so row
        ``bottom_rows - 1`` sits lowest.
        """
        if motion == MotionClass.BOTTOM:
            bottom_start = self.usable_height - self.line_height
            return bottom_start - (self.bottom_rows - 1 - row) * self.line_height
        return row * self.line_height
