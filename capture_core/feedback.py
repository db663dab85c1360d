"""
Live feedback categories shown to the user while aligning a face or document.
"""

from __future__ import annotations

from enum import Enum

from capture_core.models import DetectionResult, DocumentDetectionResult, FaceDetectionResult


class Feedback(str, Enum):
    NO_FACE = "no_face"
    CENTER_FACE = "center_face"
    LOOK_STRAIGHT = "look_straight"
    ADJUST_DISTANCE = "adjust_distance"
    HOLD_STILL = "hold_still"
    NO_DOCUMENT = "no_document"
    MOVE_CLOSER = "move_closer"
    READY = "ready"
    SEARCHING = "searching"


def feedback_for(result: DetectionResult) -> Feedback:
    """First failing criterion wins."""
    if isinstance(result, FaceDetectionResult):
        if not result.detected:
            return Feedback.NO_FACE
        if not result.centered:
            return Feedback.CENTER_FACE
        if not result.frontal:
            return Feedback.LOOK_STRAIGHT
        if not result.proper_size:
            return Feedback.ADJUST_DISTANCE
        return Feedback.HOLD_STILL
    if isinstance(result, DocumentDetectionResult):
        if not result.detected:
            return Feedback.NO_DOCUMENT
        if not result.confidence:
            return Feedback.MOVE_CLOSER
        return Feedback.READY
    return Feedback.READY if result.composite else Feedback.SEARCHING
