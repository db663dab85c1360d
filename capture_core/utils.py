"""
Timing helpers for polling loops.
"""

import time
from collections import deque
from typing import Deque


class RollingAverage:
    """Rolling average over the last N values."""

    def __init__(self, maxlen: int = 30) -> None:
        self._values: Deque[float] = deque(maxlen=maxlen)

    def add(self, value: float) -> None:
        self._values.append(value)

    @property
    def average(self) -> float:
        if not self._values:
            return 0.0
        return sum(self._values) / len(self._values)

    def clear(self) -> None:
        self._values.clear()


class TickStats:
    """Per-loop tick spacing and detector latency, in milliseconds."""

    def __init__(self, rolling_size: int = 30) -> None:
        self.ticks = 0
        self.skipped = 0
        self.last_spacing_ms = 0.0
        self.last_latency_ms = 0.0
        self._last_start: float | None = None
        self._latency = RollingAverage(maxlen=rolling_size)

    def begin(self, skipped: bool = False) -> float:
        """Mark the start of a tick. Returns the start time in seconds."""
        now = time.perf_counter()
        if self._last_start is not None:
            self.last_spacing_ms = (now - self._last_start) * 1000.0
        self._last_start = now
        self.ticks += 1
        if skipped:
            self.skipped += 1
        return now

    def end(self, started: float) -> None:
        self.last_latency_ms = (time.perf_counter() - started) * 1000.0
        self._latency.add(self.last_latency_ms)

    @property
    def rolling_latency_ms(self) -> float:
        return self._latency.average

    def to_dict(self) -> dict[str, float]:
        return {
            "ticks": self.ticks,
            "skipped": self.skipped,
            "last_spacing_ms": self.last_spacing_ms,
            "last_latency_ms": self.last_latency_ms,
            "rolling_latency_ms": self.rolling_latency_ms,
        }
