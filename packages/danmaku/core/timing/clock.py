"""Virtual playback clock.

Virtual time is the engine's estimate of the video position in ms. It
advances with the host's monotonic clock while playing, scaled by the
playback rate, and is snapped to the real video position by ``sync()``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
import time

logger = logging.getLogger(__name__)

HostClock = Callable[[], float]


def monotonic_ms() -> float:
    """Default host clock: ``time.monotonic()`` in ms."""
    return time.monotonic() * 1000.0


@dataclass(frozen=True)
class TickWindow:
    """Span of virtual time crossed by one tick.

    Attributes:
        from_ms: Virtual time before the tick.
        to_ms: Virtual time after the tick.
        host_ms: Host clock reading at the tick.
    """

    from_ms: float
    to_ms: float
    host_ms: float

    @property
    def span_ms(self) -> float:
        return self.to_ms - self.from_ms


class ClockAdapter:
    """Derives virtual video time from a host clock, play state and rate.

    The host clock is injected so tests can drive time by hand.

    Example:
        >>> host = ManualClock()
        >>> clock = ClockAdapter(host)
        >>> clock.play()
        >>> host.advance(250)
        >>> clock.tick().to_ms
        250.0
    """

    def __init__(
        self,
        host_clock: HostClock = monotonic_ms,
        *,
        initial_ms: float = 0.0,
        rate: float = 1.0,
        min_rate: float = 0.25,
    ) -> None:
        self._host_clock = host_clock
        self._min_rate = min_rate
        self._virtual_ms = float(initial_ms)
        self._rate = max(min_rate, rate)
        self._playing = False
        self._last_host_ms = host_clock()

    @property
    def now_ms(self) -> float:
        """Virtual time as of the last tick, sync or state change."""
        return self._virtual_ms

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def is_playing(self) -> bool:
        return self._playing

    def host_now(self) -> float:
        """Current host clock reading in ms."""
        return self._host_clock()

    def _advance(self, host_ms: float) -> None:
        if self._playing:
            delta = max(0.0, host_ms - self._last_host_ms)
            self._virtual_ms += delta * self._rate
        self._last_host_ms = host_ms

    def tick(self) -> TickWindow:
        """Advance virtual time to the host clock and return the crossed window.

        While paused the window is empty (``from_ms == to_ms``).
        """
        host_ms = self._host_clock()
        from_ms = self._virtual_ms
        self._advance(host_ms)
        return TickWindow(from_ms=from_ms, to_ms=self._virtual_ms, host_ms=host_ms)

    def sync(self, video_ms: float) -> float:
        """Snap virtual time to an authoritative video position.

        Returns:
            The drift that was corrected (``video_ms - previous``), after
            accounting for time elapsed since the last tick.
        """
        host_ms = self._host_clock()
        self._advance(host_ms)
        drift = float(video_ms) - self._virtual_ms
        self._virtual_ms = float(video_ms)
        return drift

    def play(self) -> None:
        if self._playing:
            return
        self._last_host_ms = self._host_clock()
        self._playing = True

    def pause(self) -> None:
        if not self._playing:
            return
        self._advance(self._host_clock())
        self._playing = False

    def set_rate(self, rate: float) -> float:
        """Change the playback rate, settling time elapsed at the old rate first.

        Returns:
            The effective (floored) rate.
        """
        self._advance(self._host_clock())
        new_rate = max(self._min_rate, rate)
        if new_rate != self._rate:
            logger.debug(f"Clock rate {self._rate} -> {new_rate}")
        self._rate = new_rate
        return new_rate
