"""
Capture session: everything one mounted capture view owns.

Wires a detector and a live frame source into the polling loop, the stability
logic (auto countdown or manual gate) and the post-capture validator.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable

from capture_core import loop
from capture_core.capture import StillImageSource
from capture_core.config import FlowSettings
from capture_core.countdown import AutoCaptureCoordinator, CaptureGate, CountdownStatus, GateStatus
from capture_core.loop import LoopHandle
from capture_core.model_loader import ModelLoadError
from capture_core.models import Validation
from capture_core.validator import PostCaptureValidator

if TYPE_CHECKING:
    from detectors.base import DetectorPluginBase

logger = logging.getLogger(__name__)


class CaptureSession:
    """
    One capture view's lifetime: mount() starts the loop, unmount() tears it down.

    frame_source must offer is_ready(), read_frame() and snapshot() (LiveFrameSource).
    In auto-capture flows the capture fires by itself once the frame has been stable
    for the configured duration; otherwise capture() is allowed while the gate is open.
    Either way at most one capture happens per session.
    """

    def __init__(
        self,
        detector: DetectorPluginBase,
        frame_source,
        flow: FlowSettings,
        *,
        on_status: Callable[[CountdownStatus | GateStatus], None] | None = None,
        on_captured: Callable[[StillImageSource], None] | None = None,
        on_validated: Callable[[Validation], None] | None = None,
        name: str | None = None,
    ) -> None:
        self.name = name or detector.kind
        self._detector = detector
        self._frame_source = frame_source
        self._flow = flow
        self._on_captured = on_captured
        self._on_validated = on_validated
        self._validator = PostCaptureValidator(detector.detect, fallback=detector.empty_result())
        self._handle: LoopHandle | None = None
        self._mounted = False
        self._unmounted = False
        self._captured: StillImageSource | None = None
        self._validation: asyncio.Task[Validation] | None = None

        self._coordinator: AutoCaptureCoordinator | None = None
        self._gate: CaptureGate | None = None
        if flow.auto_capture:
            self._coordinator = AutoCaptureCoordinator(
                self._capture, flow.required_successes, flow.interval_ms, on_update=on_status
            )
        else:
            self._gate = CaptureGate(on_update=on_status)

    @property
    def handle(self) -> LoopHandle | None:
        return self._handle

    @property
    def captured(self) -> StillImageSource | None:
        return self._captured

    @property
    def validation(self) -> asyncio.Task[Validation] | None:
        return self._validation

    @property
    def capture_enabled(self) -> bool:
        return self._gate is not None and self._gate.capture_enabled

    async def mount(self) -> LoopHandle | None:
        """Prepare the detector and start polling. Returns None if unmounted meanwhile."""
        if self._mounted:
            raise RuntimeError(f"Session {self.name} is already mounted")
        self._mounted = True
        try:
            await self._detector.prepare()
        except ModelLoadError as e:
            # Detection then reports 'not detected' until the view is retried
            logger.warning("Session %s: %s", self.name, e)
        if self._unmounted:
            return None
        on_result = self._coordinator.on_result if self._coordinator else self._gate.on_result
        self._handle = loop.start(
            self._frame_source,
            self._detector.detect,
            self._flow.interval_ms,
            on_result,
            fallback=self._detector.empty_result(),
            name=self.name,
        )
        if self._coordinator is not None:
            self._coordinator.attach(self._handle)
        logger.info("Session %s mounted", self.name)
        return self._handle

    def unmount(self) -> None:
        """Stop everything this view started. Safe to call more than once."""
        if self._unmounted:
            return
        self._unmounted = True
        loop.stop(self._handle)
        if self._validation is not None and not self._validation.done():
            self._validation.cancel()
        logger.info("Session %s unmounted", self.name)

    def capture(self) -> bool:
        """Manual capture. True if this call took the session's one capture."""
        if self._gate is None or self._unmounted or not self._gate.claim():
            return False
        loop.stop(self._handle)
        self._capture()
        return True

    async def validate(self, still: StillImageSource) -> Validation:
        """Validate any still (e.g. an uploaded image) with this session's detector."""
        return await self._validator.validate(still)

    def _capture(self) -> None:
        still = self._frame_source.snapshot()
        self._captured = still
        if self._on_captured is not None:
            self._on_captured(still)
        self._validation = asyncio.ensure_future(self._validate_captured(still))

    async def _validate_captured(self, still: StillImageSource) -> Validation:
        validation = await self._validator.validate(still)
        if self._on_validated is not None and not self._unmounted:
            self._on_validated(validation)
        return validation


async def validate_still(detector: DetectorPluginBase, still: StillImageSource) -> Validation:
    """One-shot validation of an uploaded still, outside any live session."""
    try:
        await detector.prepare()
    except ModelLoadError as e:
        logger.warning("Validation without model: %s", e)
    validator = PostCaptureValidator(detector.detect, fallback=detector.empty_result())
    return await validator.validate(still)
