"""
Polling loop controller: runs a detector against a frame source at a target cadence.

Calls are strictly serialized. The next call is scheduled interval_ms after the previous
one completes, so a detector slower than the interval only stretches the cadence.
Each loop is an asyncio task owned by a LoopHandle; stopping the handle suppresses
every later callback, including the result of a call already in flight.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Awaitable, Callable

from capture_core.capture import FrameSource
from capture_core.models import DetectionResult
from capture_core.utils import TickStats

logger = logging.getLogger(__name__)

Detect = Callable[[FrameSource], Awaitable[DetectionResult]]
OnResult = Callable[[DetectionResult], None]

_loop_ids = itertools.count(1)


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class LoopHandle:
    """Cancellation handle for one polling loop. Owned by the view that started it."""

    def __init__(
        self,
        frame_source: FrameSource,
        detect: Detect,
        interval_ms: float,
        on_result: OnResult,
        fallback: DetectionResult,
        name: str,
    ) -> None:
        self.name = name
        self.stats = TickStats()
        self._frame_source = frame_source
        self._detect = detect
        self._interval_s = interval_ms / 1000.0
        self._on_result = on_result
        self._fallback = fallback
        self._running = True
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Stop the loop. Idempotent; safe from inside on_result."""
        if not self._running:
            return
        self._running = False
        task = self._task
        # From inside the loop's own task the flag check after on_result ends it.
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        logger.debug("Polling loop %s stopped", self.name)

    async def wait(self) -> None:
        """Wait until the loop task has exited."""
        if self._task is not None:
            await asyncio.wait({self._task})

    def _start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"polling-{self.name}"
        )

    async def _run(self) -> None:
        while self._running:
            ready = self._guarded_ready()
            started = self.stats.begin(skipped=not ready)
            if ready:
                # Shielded: a stop() cancels our wait, not the detector call itself.
                result = await asyncio.shield(self._guarded_detect())
                self.stats.end(started)
            else:
                result = self._fallback
            if not self._running:
                return
            try:
                self._on_result(result)
            except Exception:
                logger.exception("Result callback failed in polling loop %s", self.name)
            if not self._running:
                return
            await asyncio.sleep(self._interval_s)

    def _guarded_ready(self) -> bool:
        try:
            return bool(self._frame_source.is_ready())
        except Exception as e:
            logger.warning("Frame source readiness check failed in polling loop %s: %s", self.name, e)
            return False

    async def _guarded_detect(self) -> DetectionResult:
        try:
            result = await self._detect(self._frame_source)
        except Exception as e:
            logger.warning("Detector failed in polling loop %s: %s", self.name, e)
            return self._fallback
        if not isinstance(result, DetectionResult):
            logger.warning(
                "Detector returned %s in polling loop %s, treating as not detected",
                type(result).__name__,
                self.name,
            )
            return self._fallback
        return result


def start(
    frame_source: FrameSource,
    detect: Detect,
    interval_ms: float,
    on_result: OnResult,
    *,
    fallback: DetectionResult | None = None,
    name: str | None = None,
) -> LoopHandle:
    """
    Start polling. Must be called with a running asyncio event loop.

    fallback is the neutral result delivered when the frame source is not ready
    or the detector fails; defaults to a generic 'not detected'.
    """
    if interval_ms <= 0:
        raise ValueError(f"interval_ms must be positive, got {interval_ms}")
    handle = LoopHandle(
        frame_source,
        detect,
        interval_ms,
        on_result,
        fallback if fallback is not None else DetectionResult.empty(),
        name or f"loop-{next(_loop_ids)}",
    )
    handle._start()
    logger.debug("Polling loop %s started (%.0f ms)", handle.name, interval_ms)
    return handle


def stop(handle: LoopHandle | None) -> None:
    """Stop a loop. No-op on None or an already stopped handle."""
    if handle is not None:
        handle.stop()
