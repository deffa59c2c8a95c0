"""Math utilities for common operations."""

from __future__ import annotations

from typing import TypeVar

import numpy as np

Number = TypeVar("Number", int, float, np.number)


def clamp(value: Number, min_val: Number, max_val: Number) -> Number:
    """Clamp value to range [min_val, max_val].

    Args:
        value: Value to clamp
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        Clamped value
    """
    return max(min_val, min(max_val, value))


def safe_div(numerator: float, denominator: float, floor: float = 1e-9) -> float:
    """Divide, keeping the denominator at or above ``floor``.

    Motion maths divides by speeds and durations that are clamped elsewhere,
    but a zero-width or zero-duration input must never raise.
    """
    return float(numerator) / max(float(denominator), floor)
