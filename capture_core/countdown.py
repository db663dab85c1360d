"""
Countdown and capture coordination on top of the stability accumulator.

AutoCaptureCoordinator drives the selfie countdown and fires the capture exactly once.
CaptureGate is the manual (document) variant: it only enables the capture control.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable

from capture_core.feedback import Feedback, feedback_for
from capture_core.loop import LoopHandle
from capture_core.models import DetectionResult
from capture_core.stability import StabilityAccumulator

logger = logging.getLogger(__name__)


def frames_remaining(consecutive: int, required: int) -> int:
    return max(0, required - consecutive)


def seconds_remaining(consecutive: int, required: int, interval_ms: float) -> int:
    """Whole seconds left on the countdown, rounded up."""
    if interval_ms <= 0:
        raise ValueError(f"interval_ms must be positive, got {interval_ms}")
    frames_per_second = 1000.0 / interval_ms
    return math.ceil(round(frames_remaining(consecutive, required) / frames_per_second, 6))


@dataclass(frozen=True)
class CountdownStatus:
    composite: bool
    consecutive_successes: int
    required_successes: int
    frames_remaining: int
    seconds_remaining: int
    is_capturing: bool
    feedback: Feedback

    def to_dict(self) -> dict[str, Any]:
        return {
            "composite": self.composite,
            "consecutive_successes": self.consecutive_successes,
            "required_successes": self.required_successes,
            "frames_remaining": self.frames_remaining,
            "seconds_remaining": self.seconds_remaining,
            "is_capturing": self.is_capturing,
            "feedback": self.feedback.value,
        }


@dataclass(frozen=True)
class GateStatus:
    capture_enabled: bool
    feedback: Feedback

    def to_dict(self) -> dict[str, Any]:
        return {"capture_enabled": self.capture_enabled, "feedback": self.feedback.value}


class AutoCaptureCoordinator:
    """
    Maps consecutive successes to a countdown and triggers capture once stable.

    Firing marks the state as capturing before anything else, so a result that
    arrives while the loop is still winding down is ignored rather than
    triggering a second capture.
    """

    def __init__(
        self,
        capture_action: Callable[[], Any],
        required_successes: int,
        interval_ms: float,
        on_update: Callable[[CountdownStatus], None] | None = None,
    ) -> None:
        self._capture_action = capture_action
        self._interval_ms = interval_ms
        self._on_update = on_update
        self._accumulator = StabilityAccumulator(required_successes)
        self._handle: LoopHandle | None = None
        self._last_status: CountdownStatus | None = None

    def attach(self, handle: LoopHandle) -> None:
        """Loop to stop when the capture fires."""
        self._handle = handle

    @property
    def is_capturing(self) -> bool:
        return self._accumulator.state.is_capturing

    @property
    def status(self) -> CountdownStatus | None:
        return self._last_status

    def on_result(self, result: DetectionResult) -> CountdownStatus | None:
        if self.is_capturing:
            return None
        composite, consecutive = self._accumulator.evaluate(result)
        state = self._accumulator.state
        if state.is_stable:
            self._fire()
        status = CountdownStatus(
            composite=composite,
            consecutive_successes=consecutive,
            required_successes=state.required_successes,
            frames_remaining=frames_remaining(consecutive, state.required_successes),
            seconds_remaining=seconds_remaining(
                consecutive, state.required_successes, self._interval_ms
            ),
            is_capturing=self.is_capturing,
            feedback=feedback_for(result),
        )
        self._last_status = status
        if self._on_update is not None:
            self._on_update(status)
        return status

    def _fire(self) -> None:
        self._accumulator.mark_capturing()
        if self._handle is not None:
            self._handle.stop()
        logger.info(
            "Stable for %d frames, capturing", self._accumulator.state.required_successes
        )
        try:
            self._capture_action()
        except Exception:
            logger.exception("Capture action failed")


class CaptureGate:
    """Manual-capture variant: the composite predicate enables the capture control."""

    def __init__(self, on_update: Callable[[GateStatus], None] | None = None) -> None:
        self._on_update = on_update
        self._enabled = False
        self._claimed = False

    @property
    def capture_enabled(self) -> bool:
        return self._enabled and not self._claimed

    def on_result(self, result: DetectionResult) -> GateStatus | None:
        if self._claimed:
            return None
        self._enabled = result.composite
        status = GateStatus(capture_enabled=self._enabled, feedback=feedback_for(result))
        if self._on_update is not None:
            self._on_update(status)
        return status

    def claim(self) -> bool:
        """Take the one capture this gate allows. False if disabled or already taken."""
        if not self.capture_enabled:
            return False
        self._claimed = True
        return True
