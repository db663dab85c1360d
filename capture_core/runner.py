"""
Session runner: hosts a capture session's asyncio loop on a worker thread and
re-emits its callbacks as Qt signals so the UI never blocks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from PySide6.QtCore import QObject, QThread, Signal

from capture_core.capture import LiveFrameSource, VideoCaptureSource
from capture_core.config import FlowSettings
from capture_core.session import CaptureSession

if TYPE_CHECKING:
    from capture_core.models import Validation
    from detectors.base import DetectorPluginBase

logger = logging.getLogger(__name__)


class CaptureSessionRunner(QObject):
    """Worker that pumps camera frames and runs one CaptureSession until capture or stop."""

    # Emit (frame_bgr, loop_stats_dict) for every decoded preview frame
    frame_ready = Signal(object, object)
    # Emit CountdownStatus (auto flows) or GateStatus (manual flows) per poll
    status_changed = Signal(object)
    # Emit the captured StillImageSource
    captured = Signal(object)
    # Emit the Validation of the captured still
    validated = Signal(object)
    error_occurred = Signal(str)
    stopped = Signal()

    def __init__(
        self,
        capture: VideoCaptureSource,
        detector: DetectorPluginBase,
        flow: FlowSettings,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._capture = capture
        self._frame_source = LiveFrameSource(capture)
        self._detector = detector
        self._flow = flow
        self._session: CaptureSession | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._running = False
        self._thread: QThread | None = None

    def start(self) -> None:
        """Start the session in a background thread."""
        if self._running:
            return
        self._running = True
        self._thread = QThread()
        self.moveToThread(self._thread)
        self._thread.started.connect(self._run_loop)
        self._thread.start()

    def stop(self) -> None:
        """Request stop (unmount). Callable from any thread."""
        self._running = False
        self._call_in_loop(self._unmount)

    def request_capture(self) -> None:
        """Manual capture from the UI thread; ignored unless the gate is open."""
        self._call_in_loop(self._manual_capture)

    def _call_in_loop(self, callback) -> None:
        loop = self._loop
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(callback)
        except RuntimeError:
            # Loop already closed: the session is gone anyway
            pass

    def _unmount(self) -> None:
        if self._session is not None:
            self._session.unmount()

    def _manual_capture(self) -> None:
        if self._session is not None and not self._session.capture():
            logger.debug("Capture requested while not allowed")

    def _run_loop(self) -> None:
        """Runs in worker thread: owns the event loop for the whole session."""
        try:
            asyncio.run(self._main())
        except Exception as e:  # noqa: BLE001
            logger.exception("Capture session failed")
            self.error_occurred.emit(str(e))
        self._running = False
        self.stopped.emit()

    async def _main(self) -> None:
        self._loop = asyncio.get_running_loop()
        session = CaptureSession(
            self._detector,
            self._frame_source,
            self._flow,
            on_status=self.status_changed.emit,
            on_captured=self.captured.emit,
            on_validated=self._on_validated,
        )
        self._session = session
        # Video files are played back at their own frame rate; cameras block on read
        frame_delay = 1.0 / self._capture.get_fps() if self._capture.source_path else 0.0
        try:
            handle = await session.mount()
            while self._running and handle is not None and self._capture.is_opened():
                frame = await asyncio.to_thread(self._frame_source.grab)
                if frame is None:
                    logger.info("Video source ended")
                    break
                self.frame_ready.emit(frame, handle.stats.to_dict())
                if session.captured is not None:
                    break
                if frame_delay:
                    await asyncio.sleep(frame_delay)
            if session.validation is not None:
                await asyncio.wait({session.validation})
        finally:
            session.unmount()
            self._loop = None

    def _on_validated(self, validation: Validation) -> None:
        self.validated.emit(validation)

    def finish_thread(self) -> None:
        """Call after stopped signal: quit and wait for thread."""
        if self._thread is not None and self._thread.isRunning():
            self._thread.quit()
            self._thread.wait(2000)
        self._thread = None
