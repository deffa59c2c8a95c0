"""Per-row availability for one lane pool."""

from __future__ import annotations

import logging

from danmaku.core.bullets.models import LanePoolKind

logger = logging.getLogger(__name__)


class LanePool:
    """Earliest virtual time each row may accept a new bullet.

    Reservations only move a row's availability forward; ``reset()`` is the
    one way to move it back (after a seek).

    Example:
        >>> pool = LanePool(LanePoolKind.TOP, rows=3)
        >>> pool.reserve(0, 4000)
        >>> pool.next_available(0), pool.next_available(1)
        (4000.0, 0.0)
    """

    def __init__(self, kind: LanePoolKind, rows: int, baseline_ms: float = 0.0) -> None:
        if rows < 1:
            raise ValueError(f"Lane pool needs at least one row, got {rows}")
        self.kind = kind
        self._baseline_ms = float(baseline_ms)
        self._next: list[float] = [self._baseline_ms] * rows

    def __len__(self) -> int:
        return len(self._next)

    @property
    def rows(self) -> int:
        return len(self._next)

    @property
    def baseline_ms(self) -> float:
        return self._baseline_ms

    def next_available(self, row: int) -> float:
        return self._next[row]

    def reserve(self, row: int, until_ms: float) -> None:
        """Make ``row`` unavailable before ``until_ms``."""
        if until_ms > self._next[row]:
            self._next[row] = float(until_ms)

    def resize(self, rows: int) -> None:
        """Change the row count, keeping the availability of retained rows."""
        if rows < 1:
            raise ValueError(f"Lane pool needs at least one row, got {rows}")
        current = len(self._next)
        if rows < current:
            del self._next[rows:]
        elif rows > current:
            self._next.extend([self._baseline_ms] * (rows - current))
        if rows != current:
            logger.debug(f"{self.kind.value} lanes resized {current} -> {rows}")

    def reset(self, baseline_ms: float) -> None:
        """Make every row available from ``baseline_ms``."""
        self._baseline_ms = float(baseline_ms)
        self._next = [self._baseline_ms] * len(self._next)

    def availability(self) -> tuple[float, ...]:
        return tuple(self._next)
