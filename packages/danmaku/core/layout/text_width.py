"""Text width estimation with a bounded cache.

The default estimator treats CJK ideographs as one em wide and everything
else as 0.6 em. Hosts with a real shaping engine can plug in their own
callable; the allocator only needs a consistent width per (font size, text).
"""

from __future__ import annotations

from collections import OrderedDict
import logging
from typing import Protocol

logger = logging.getLogger(__name__)

# CJK Unified Ideographs, Extension A, Extension B
_CJK_RANGES: tuple[tuple[int, int], ...] = (
    (0x4E00, 0x9FFF),
    (0x3400, 0x4DBF),
    (0x20000, 0x2A6DF),
)


class TextWidthEstimator(Protocol):
    """Callable returning the rendered width in px of ``text`` at ``font_size``."""

    def __call__(self, text: str, font_size: float) -> float: ...


def is_cjk(char: str) -> bool:
    """Check whether a single character is a CJK ideograph."""
    code = ord(char)
    return any(lo <= code <= hi for lo, hi in _CJK_RANGES)


def estimate_text_width(
    text: str,
    font_size: float,
    *,
    cjk_ratio: float = 1.0,
    other_ratio: float = 0.6,
    padding_px: float = 16.0,
) -> float:
    """Approximate the rendered width of ``text``.

    Args:
        text: Comment text.
        font_size: Font size in px.
        cjk_ratio: CJK glyph advance as a fraction of the font size.
        other_ratio: Non-CJK glyph advance as a fraction of the font size.
        padding_px: Constant added for stroke and side bearings.

    Returns:
        Width in px.

    Example:
        >>> estimate_text_width("弹幕ab", 20)
        80.0
    """
    cjk = sum(1 for ch in text if is_cjk(ch))
    other = len(text) - cjk
    return cjk * font_size * cjk_ratio + other * font_size * other_ratio + padding_px


class WidthCache:
    """LRU cache in front of a TextWidthEstimator, keyed by (font_size, text).

    Example:
        >>> cache = WidthCache(max_entries=2)
        >>> cache.measure("hello", 20, max_width=2560)
        76.0
    """

    def __init__(
        self,
        estimator: TextWidthEstimator | None = None,
        *,
        max_entries: int = 10000,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._estimator: TextWidthEstimator = estimator or estimate_text_width
        self._max_entries = max_entries
        self._entries: OrderedDict[tuple[float, str], float] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def measure(self, text: str, font_size: float, max_width: float | None = None) -> float:
        """Return the (cached) width of ``text``, optionally capped at ``max_width``."""
        key = (font_size, text)
        width = self._entries.get(key)
        if width is None:
            self.misses += 1
            width = float(self._estimator(text, font_size))
            self._entries[key] = width
            if len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
        else:
            self.hits += 1
            self._entries.move_to_end(key)

        if max_width is not None:
            return min(width, max_width)
        return width

    def clear(self) -> None:
        self._entries.clear()
