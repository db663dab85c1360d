"""
Shared fakes for the test suite: frame sources and scripted detectors.
No camera or model needed.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import numpy as np

from capture_core.capture import StillImageSource
from capture_core.models import DocumentDetectionResult, FaceDetectionResult
from detectors.base import DetectorPluginBase

GOOD_FACE = FaceDetectionResult(detected=True, centered=True, frontal=True, proper_size=True)
OFF_CENTER_FACE = FaceDetectionResult(detected=True, centered=False, frontal=True, proper_size=True)
NO_FACE = FaceDetectionResult.empty()

GOOD_DOCUMENT = DocumentDetectionResult(detected=True, confidence=True)
FAR_DOCUMENT = DocumentDetectionResult(detected=True, confidence=False)


def make_frame(height: int = 48, width: int = 64, value: int = 0) -> np.ndarray:
    return np.full((height, width, 3), value, dtype=np.uint8)


class FakeFrameSource:
    """Live-source stand-in whose readiness the test controls."""

    def __init__(self, ready: bool = True, frame: np.ndarray | None = None) -> None:
        self.ready = ready
        self.frame = frame if frame is not None else make_frame()
        self.snapshots = 0

    def is_ready(self) -> bool:
        return self.ready

    def read_frame(self) -> np.ndarray | None:
        return self.frame if self.ready else None

    def snapshot(self) -> StillImageSource:
        self.snapshots += 1
        return StillImageSource(self.frame.copy())


class RecordingDetector:
    """Async detect() that records timing and how many calls overlap."""

    def __init__(self, delay: float = 0.0, result: Any = GOOD_FACE) -> None:
        self.delay = delay
        self.result = result
        self.starts: list[float] = []
        self.outstanding = 0
        self.max_outstanding = 0

    async def detect(self, source) -> Any:
        self.starts.append(time.perf_counter())
        self.outstanding += 1
        self.max_outstanding = max(self.max_outstanding, self.outstanding)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self.result
        finally:
            self.outstanding -= 1

    @property
    def calls(self) -> int:
        return len(self.starts)


class ScriptedDetector(DetectorPluginBase):
    """Plugin whose process() replays a list of results, then repeats a default."""

    plugin_id = "scripted"
    display_name = "Scripted"
    kind = "face"
    result_type = FaceDetectionResult

    def __init__(self, results: list | None = None, default: Any = GOOD_FACE) -> None:
        super().__init__()
        self.results = list(results or [])
        self.default = default
        self.calls = 0
        self.prepared = 0
        self.prepare_error: Exception | None = None

    @staticmethod
    def default_settings() -> dict[str, Any]:
        return {"threshold": 0.5}

    async def prepare(self) -> None:
        self.prepared += 1
        if self.prepare_error is not None:
            raise self.prepare_error

    def process(self, frame_bgr: np.ndarray) -> Any:
        self.calls += 1
        if self.results:
            item = self.results.pop(0)
        else:
            item = self.default
        if isinstance(item, Exception):
            raise item
        return item
