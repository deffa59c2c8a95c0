"""Hand-driven host clock for deterministic playback."""

from __future__ import annotations


class ManualClock:
    """Host clock that only moves when told to.

    Used by tests and by the CLI simulator, which replays a whole session
    without real waits.

    Example:
        >>> host = ManualClock()
        >>> host.advance(100)
        >>> host()
        100.0
    """

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = float(start_ms)

    def __call__(self) -> float:
        return self._now

    def advance(self, delta_ms: float) -> None:
        if delta_ms < 0:
            raise ValueError("ManualClock cannot move backwards")
        self._now += delta_ms

    def set(self, now_ms: float) -> None:
        if now_ms < self._now:
            raise ValueError("ManualClock cannot move backwards")
        self._now = float(now_ms)
