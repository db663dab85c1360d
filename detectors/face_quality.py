"""
Face quality detector using the MediaPipe Tasks FaceLandmarker.

Checks that a single face is centred in the oval overlay, looking at the camera,
and sized to fill the overlay. Thresholds come from settings.
"""

from __future__ import annotations

import functools
import threading
from pathlib import Path
from typing import Any, NamedTuple

import cv2
import mediapipe as mp
import numpy as np

from capture_core.model_loader import SharedResource, get_model_path
from capture_core.models import BoundingBox, FaceDetectionResult
from detectors.base import DetectorPluginBase

# Face mesh indices: eye corners, nose tip, cheek contour
_LEFT_EYE = (33, 133)
_RIGHT_EYE = (362, 263)
_NOSE_TIP = 1
_LEFT_CONTOUR = 234
_RIGHT_CONTOUR = 454

Point = tuple[float, float]


class FaceKeypoints(NamedTuple):
    left_eye: Point
    right_eye: Point
    nose_tip: Point
    left_contour: Point
    right_contour: Point


def _create_landmarker(models_dir: str | None = None) -> mp.tasks.vision.FaceLandmarker:
    model_path = str(get_model_path("face_landmarker.task", Path(models_dir) if models_dir else None))
    base_options = mp.tasks.BaseOptions(model_asset_path=model_path)
    options = mp.tasks.vision.FaceLandmarkerOptions(
        base_options=base_options,
        running_mode=mp.tasks.vision.RunningMode.IMAGE,
        num_faces=1,
        min_face_detection_confidence=0.5,
        min_face_presence_confidence=0.5,
    )
    return mp.tasks.vision.FaceLandmarker.create_from_options(options)


# One landmarker per models directory, shared by every face view and the validator
_LANDMARKERS: dict[str | None, SharedResource[mp.tasks.vision.FaceLandmarker]] = {}
_landmarker_lock = threading.Lock()


def landmarker_resource(models_dir: str | None = None) -> SharedResource[mp.tasks.vision.FaceLandmarker]:
    """Shared landmarker for a models directory (None: the bundled models/ folder)."""
    key = str(Path(models_dir).expanduser().resolve()) if models_dir else None
    resource = _LANDMARKERS.get(key)
    if resource is None:
        name = f"face landmarker ({key})" if key else "face landmarker"
        resource = SharedResource(name, functools.partial(_create_landmarker, key))
        _LANDMARKERS[key] = resource
    return resource


FACE_LANDMARKER = landmarker_resource()


def overlay_size(frame_w: float, frame_h: float, settings: dict[str, Any]) -> tuple[float, float]:
    """Oval guide overlay centred in the frame: a fraction of the width, fixed aspect."""
    width = frame_w * settings["overlay_width_ratio"]
    return width, width * settings["overlay_aspect"]


def is_centered(box: BoundingBox, frame_w: float, frame_h: float, settings: dict[str, Any]) -> bool:
    overlay_w, overlay_h = overlay_size(frame_w, frame_h, settings)
    cx, cy = box.center
    x_offset = abs(cx - frame_w / 2) / overlay_w
    y_offset = abs(cy - frame_h / 2) / overlay_h
    tolerance = settings["center_tolerance"]
    return x_offset < tolerance and y_offset < tolerance


def is_frontal(points: FaceKeypoints, tolerance: float) -> bool:
    """
    Symmetry check: the nose sits midway between the eyes and the cheek
    contours are equally far from the nose.
    """
    eye_mid_x = (points.left_eye[0] + points.right_eye[0]) / 2
    eye_distance = abs(points.right_eye[0] - points.left_eye[0])
    if eye_distance == 0:
        return False
    nose_x = points.nose_tip[0]
    nose_ratio = abs(nose_x - eye_mid_x) / eye_distance

    left_distance = abs(nose_x - points.left_contour[0])
    right_distance = abs(points.right_contour[0] - nose_x)
    if left_distance + right_distance == 0:
        return False
    contour_ratio = abs(left_distance - right_distance) / (left_distance + right_distance)

    return nose_ratio < tolerance and contour_ratio < tolerance


def is_proper_size(box: BoundingBox, frame_w: float, frame_h: float, settings: dict[str, Any]) -> bool:
    overlay_w, _ = overlay_size(frame_w, frame_h, settings)
    ratio = box.width / overlay_w
    return settings["min_size_ratio"] <= ratio <= settings["max_size_ratio"]


def evaluate_face(
    box: BoundingBox,
    points: FaceKeypoints,
    frame_w: float,
    frame_h: float,
    settings: dict[str, Any],
) -> FaceDetectionResult:
    return FaceDetectionResult(
        detected=True,
        centered=is_centered(box, frame_w, frame_h, settings),
        frontal=is_frontal(points, settings["frontal_tolerance"]),
        proper_size=is_proper_size(box, frame_w, frame_h, settings),
        box=box,
    )


def keypoints_from_landmarks(pixels: np.ndarray) -> tuple[BoundingBox, FaceKeypoints]:
    """Box and keypoints from an (N, 2) array of landmark pixel coordinates."""
    x_min, y_min = pixels.min(axis=0)
    x_max, y_max = pixels.max(axis=0)
    box = BoundingBox(float(x_min), float(y_min), float(x_max - x_min), float(y_max - y_min))

    def mid(a: int, b: int) -> Point:
        return float((pixels[a, 0] + pixels[b, 0]) / 2), float((pixels[a, 1] + pixels[b, 1]) / 2)

    def at(i: int) -> Point:
        return float(pixels[i, 0]), float(pixels[i, 1])

    points = FaceKeypoints(
        left_eye=mid(*_LEFT_EYE),
        right_eye=mid(*_RIGHT_EYE),
        nose_tip=at(_NOSE_TIP),
        left_contour=at(_LEFT_CONTOUR),
        right_contour=at(_RIGHT_CONTOUR),
    )
    return box, points


class FaceQualityDetector(DetectorPluginBase):
    plugin_id = "face_quality"
    display_name = "Face Quality"
    kind = "face"
    result_type = FaceDetectionResult

    @staticmethod
    def default_settings() -> dict[str, Any]:
        return {
            "center_tolerance": 0.08,
            "frontal_tolerance": 0.15,
            "min_size_ratio": 0.35,
            "max_size_ratio": 0.85,
            "overlay_width_ratio": 0.8,
            "overlay_aspect": 4 / 3,
            # Where face_landmarker.task is found or downloaded to; None uses models/
            "models_dir": None,
        }

    @property
    def landmarker(self) -> SharedResource[mp.tasks.vision.FaceLandmarker]:
        return landmarker_resource(self._settings["models_dir"])

    async def prepare(self) -> None:
        await self.landmarker.acquire()

    def process(self, frame_bgr: np.ndarray) -> FaceDetectionResult:
        landmarker = self.landmarker
        if not landmarker.loaded:
            return FaceDetectionResult.empty()
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
        with _landmarker_lock:
            result = landmarker.get().detect(mp_image)
        if not result.face_landmarks:
            return FaceDetectionResult.empty()
        h, w = frame_bgr.shape[:2]
        pixels = np.array([(lm.x * w, lm.y * h) for lm in result.face_landmarks[0]])
        box, points = keypoints_from_landmarks(pixels)
        return evaluate_face(box, points, w, h, self._settings)


plugin = FaceQualityDetector()
