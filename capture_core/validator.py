"""
Post-capture validation: one detection pass over the captured still.
"""

from __future__ import annotations

import asyncio
import logging

from capture_core.capture import StillImageSource
from capture_core.loop import Detect
from capture_core.models import DetectionResult, Validation, ValidationOutcome

logger = logging.getLogger(__name__)


def classify(result: DetectionResult) -> ValidationOutcome:
    if not result.detected:
        return ValidationOutcome.FAILURE
    if result.composite:
        return ValidationOutcome.SUCCESS
    return ValidationOutcome.WARNING


class PostCaptureValidator:
    """
    Validates captured stills. Concurrent calls for the same image share one
    detection pass and resolve to the same Validation instance.
    """

    def __init__(self, detect: Detect, fallback: DetectionResult | None = None) -> None:
        self._detect = detect
        self._fallback = fallback if fallback is not None else DetectionResult.empty()
        self._pending: dict[str, asyncio.Task[Validation]] = {}

    def is_pending(self, still: StillImageSource) -> bool:
        return still.key in self._pending

    async def validate(self, still: StillImageSource) -> Validation:
        key = still.key
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(still))
            self._pending[key] = task
            task.add_done_callback(lambda _t: self._pending.pop(key, None))
        # One caller going away must not cancel the pass the others wait on.
        return await asyncio.shield(task)

    async def _run(self, still: StillImageSource) -> Validation:
        try:
            result = await self._detect(still)
        except Exception as e:
            logger.warning("Detector failed during post-capture validation: %s", e)
            result = self._fallback
        if not isinstance(result, DetectionResult):
            logger.warning(
                "Detector returned %s during validation, treating as not detected",
                type(result).__name__,
            )
            result = self._fallback
        validation = Validation(outcome=classify(result), result=result)
        logger.info("Captured image validated: %s", validation.outcome.value)
        return validation
