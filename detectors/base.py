"""
Base interface every detector plugin implements.

A detector turns one frame into a DetectionResult. process() does the blocking
pixel work; detect() is the async boundary the polling loop and the validator call.
It never raises in steady state: failures come back as empty_result().
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from capture_core.models import DetectionResult

if TYPE_CHECKING:
    import numpy as np

    from capture_core.capture import FrameSource

logger = logging.getLogger(__name__)


class DetectorPluginBase(ABC):
    """Interface for detector plugins. Subclass and implement the abstract methods."""

    plugin_id: str = ""
    display_name: str = ""
    kind: str = ""
    result_type: type[DetectionResult] = DetectionResult

    def __init__(self) -> None:
        self._settings: dict[str, Any] = self.default_settings()

    @staticmethod
    @abstractmethod
    def default_settings() -> dict[str, Any]:
        """Return default thresholds for this detector."""
        ...

    @property
    def settings(self) -> dict[str, Any]:
        return dict(self._settings)

    def init(self, settings: dict[str, Any] | None = None) -> None:
        """Apply thresholds over the defaults. Unknown keys are rejected."""
        merged = self.default_settings()
        if settings:
            unknown = set(settings) - set(merged)
            if unknown:
                raise ValueError(f"Unknown {self.plugin_id} settings: {sorted(unknown)}")
            merged.update(settings)
        self._settings = merged

    async def prepare(self) -> None:
        """Acquire shared models before the first detect(). Default: nothing to load."""

    @abstractmethod
    def process(self, frame_bgr: np.ndarray) -> DetectionResult:
        """Analyse one BGR frame. Blocking; runs in a worker thread."""
        ...

    def empty_result(self) -> DetectionResult:
        return self.result_type.empty()

    async def detect(self, frame_source: FrameSource) -> DetectionResult:
        if not frame_source.is_ready():
            return self.empty_result()
        frame = frame_source.read_frame()
        if frame is None or frame.size == 0:
            return self.empty_result()
        try:
            return await asyncio.to_thread(self.process, frame)
        except Exception as e:
            logger.warning("%s detection error: %s", self.display_name or self.plugin_id, e)
            return self.empty_result()
