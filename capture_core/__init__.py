# Core: frame sources, polling loop, stability, countdown, validation

from capture_core.capture import LiveFrameSource, StillImageSource, VideoCaptureSource
from capture_core.loop import LoopHandle, start, stop
from capture_core.models import (
    DetectionResult,
    DocumentDetectionResult,
    FaceDetectionResult,
    Validation,
    ValidationOutcome,
)

__all__ = [
    "DetectionResult",
    "DocumentDetectionResult",
    "FaceDetectionResult",
    "LiveFrameSource",
    "LoopHandle",
    "StillImageSource",
    "Validation",
    "ValidationOutcome",
    "VideoCaptureSource",
    "start",
    "stop",
]
