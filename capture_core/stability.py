"""
Stability accumulator: counts strictly consecutive frames that pass every criterion.

A single failing frame resets the count to zero. There is no partial credit, so a
false positive while the user is still aligning cannot bank progress.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace

from capture_core.models import DetectionResult


def required_successes(stable_duration_s: float, interval_ms: float) -> int:
    """Number of consecutive successful polls that span stable_duration_s."""
    if interval_ms <= 0:
        raise ValueError(f"interval_ms must be positive, got {interval_ms}")
    if stable_duration_s < 0:
        raise ValueError(f"stable_duration_s must be >= 0, got {stable_duration_s}")
    # round() absorbs float noise such as 1.1 * 1000 / 100 == 11.000000000000002
    frames = math.ceil(round(stable_duration_s * 1000.0 / interval_ms, 6))
    return max(1, frames)


@dataclass(frozen=True)
class StabilityState:
    consecutive_successes: int = 0
    required_successes: int = 1
    is_capturing: bool = False

    def __post_init__(self) -> None:
        if self.consecutive_successes < 0:
            raise ValueError("consecutive_successes must be >= 0")
        if self.required_successes <= 0:
            raise ValueError("required_successes must be > 0")

    @property
    def is_stable(self) -> bool:
        return self.consecutive_successes >= self.required_successes


def advance(state: StabilityState, result: DetectionResult) -> StabilityState:
    """Next state for one new result. Pure; a capturing state never changes."""
    if state.is_capturing:
        return state
    if result.composite:
        return replace(state, consecutive_successes=state.consecutive_successes + 1)
    if state.consecutive_successes == 0:
        return state
    return replace(state, consecutive_successes=0)


class StabilityAccumulator:
    """Stateful wrapper around advance() for callers that want a running counter."""

    def __init__(self, required: int = 1) -> None:
        self._state = StabilityState(required_successes=required)

    @property
    def state(self) -> StabilityState:
        return self._state

    @property
    def consecutive_successes(self) -> int:
        return self._state.consecutive_successes

    def evaluate(self, result: DetectionResult) -> tuple[bool, int]:
        """Fold one result in. Returns (composite, consecutive_successes)."""
        self._state = advance(self._state, result)
        return result.composite, self._state.consecutive_successes

    def mark_capturing(self) -> None:
        self._state = replace(self._state, is_capturing=True)

    def reset(self) -> None:
        self._state = StabilityState(required_successes=self._state.required_successes)
