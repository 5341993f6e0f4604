"""
Millisecond clock for the LED host loop.

The animations keep time the way the panel controller does: a fixed-width
millisecond counter that wraps around during long uptimes. Every interval
check goes through elapsed(), which subtracts modulo the counter width, so a
wrap between two readings still yields the true (small) difference.
"""

from __future__ import annotations

import time
from typing import Callable

CLOCK_BITS: int = 32
CLOCK_MASK: int = (1 << CLOCK_BITS) - 1


def elapsed(now: int, since: int) -> int:
    """Milliseconds from `since` to `now`, correct across a counter wrap."""
    return (now - since) & CLOCK_MASK


def due(now: int, since: int, interval: float) -> bool:
    """True once at least `interval` ms have passed since `since`."""
    return elapsed(now, since) >= interval


class Clock:
    """Wrapping millisecond counter read once per host tick.

    `source` returns seconds (defaults to time.monotonic); `offset_ms` lets
    tests start the counter just below the wrap point.
    """

    def __init__(
        self,
        source: Callable[[], float] = time.monotonic,
        offset_ms: int = 0,
    ) -> None:
        self._source = source
        self._t0: float = source()
        self._offset: int = offset_ms

    def millis(self) -> int:
        raw = int((self._source() - self._t0) * 1000.0) + self._offset
        return raw & CLOCK_MASK


class ManualClock:
    """Clock driven by hand, for headless runs and tests."""

    def __init__(self, start_ms: int = 0) -> None:
        self._now: int = start_ms & CLOCK_MASK

    def millis(self) -> int:
        return self._now

    def advance(self, ms: int) -> int:
        self._now = (self._now + ms) & CLOCK_MASK
        return self._now
