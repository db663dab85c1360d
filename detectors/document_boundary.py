"""
Document boundary detector: Canny edges + contour approximation with OpenCV.

Finds the largest four-sided contour and reports whether it fills enough of the frame.
"""

from __future__ import annotations

from typing import Any

import cv2
import numpy as np

from capture_core.models import Corners, DocumentDetectionResult
from detectors.base import DetectorPluginBase


def order_corners(pts: np.ndarray) -> np.ndarray:
    """Order four points: top-left, top-right, bottom-right, bottom-left."""
    pts = pts.reshape(4, 2).astype("float32")
    s = pts.sum(axis=1)
    d = np.diff(pts, axis=1).ravel()
    return np.array(
        [pts[np.argmin(s)], pts[np.argmin(d)], pts[np.argmax(s)], pts[np.argmax(d)]],
        dtype="float32",
    )


def find_document_quad(frame_bgr: np.ndarray, settings: dict[str, Any]) -> np.ndarray | None:
    """Largest 4-point contour in source pixel coordinates, or None."""
    h, w = frame_bgr.shape[:2]
    scale = min(1.0, settings["max_processing_dimension"] / max(h, w))
    work = frame_bgr
    if scale < 1.0:
        work = cv2.resize(frame_bgr, (int(w * scale), int(h * scale)), interpolation=cv2.INTER_AREA)

    gray = cv2.cvtColor(work, cv2.COLOR_BGR2GRAY) if work.ndim == 3 else work
    blurred = cv2.GaussianBlur(gray, (5, 5), 0)
    edges = cv2.Canny(blurred, settings["low_threshold"], settings["high_threshold"])
    edges = cv2.dilate(edges, np.ones((3, 3), np.uint8), iterations=1)

    contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    min_area = settings["min_area"] * scale * scale
    best: np.ndarray | None = None
    best_area = 0.0
    for contour in contours:
        area = cv2.contourArea(contour)
        if area < min_area or area <= best_area:
            continue
        perimeter = cv2.arcLength(contour, True)
        approx = cv2.approxPolyDP(contour, settings["approx_epsilon"] * perimeter, True)
        if len(approx) == 4 and cv2.isContourConvex(approx):
            best = approx
            best_area = area
    if best is None:
        return None
    return order_corners(best) / scale


def fill_ratio(quad: np.ndarray, frame_w: float, frame_h: float) -> float:
    """Area of the document's extent relative to the frame."""
    tl, tr, br, bl = quad
    doc_w = max(abs(tr[0] - tl[0]), abs(br[0] - bl[0]))
    doc_h = max(abs(bl[1] - tl[1]), abs(br[1] - tr[1]))
    return float(doc_w * doc_h) / float(frame_w * frame_h)


class DocumentBoundaryDetector(DetectorPluginBase):
    plugin_id = "document_boundary"
    display_name = "Document Boundary"
    kind = "document"
    result_type = DocumentDetectionResult

    @staticmethod
    def default_settings() -> dict[str, Any]:
        return {
            "max_processing_dimension": 800,
            "low_threshold": 50,
            "high_threshold": 150,
            "min_area": 1000,
            "approx_epsilon": 0.02,
            "min_fill_ratio": 0.15,
        }

    def process(self, frame_bgr: np.ndarray) -> DocumentDetectionResult:
        quad = find_document_quad(frame_bgr, self._settings)
        if quad is None:
            return DocumentDetectionResult.empty()
        h, w = frame_bgr.shape[:2]
        tl, tr, br, bl = (tuple(float(v) for v in p) for p in quad)
        return DocumentDetectionResult(
            detected=True,
            confidence=fill_ratio(quad, w, h) > self._settings["min_fill_ratio"],
            corners=Corners(top_left=tl, top_right=tr, bottom_right=br, bottom_left=bl),
        )


plugin = DocumentBoundaryDetector()
