"""
Frame sources: a live camera/video stream or a captured still image.
The core only reads frames through is_ready()/read_frame(); the host view owns the camera.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import sys
from pathlib import Path
from typing import Protocol

import cv2
import numpy as np


class FrameSource(Protocol):
    def is_ready(self) -> bool:
        """True when a decoded frame is available."""
        ...

    def read_frame(self) -> np.ndarray | None:
        """Return the current BGR frame, or None if there is none."""
        ...


class VideoCaptureSource:
    """Unified source for webcam (by index) or video file."""

    def __init__(self) -> None:
        self._cap: cv2.VideoCapture | None = None
        self._source_path: str | None = None  # None = webcam

    def open_camera(self, index: int = 0) -> bool:
        """Open default or specified webcam. Returns True on success."""
        self.close()
        if sys.platform == "win32":
            self._cap = cv2.VideoCapture(index, cv2.CAP_DSHOW)
        else:
            self._cap = cv2.VideoCapture(index)
        self._source_path = None
        return self._cap.isOpened()

    def open_file(self, path: str | Path) -> bool:
        """Open a video file. Returns True on success."""
        self.close()
        path_str = str(path)
        self._cap = cv2.VideoCapture(path_str)
        self._source_path = path_str
        return self._cap.isOpened()

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        self._source_path = None

    def is_opened(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def read(self) -> tuple[bool, np.ndarray | None]:
        """Read next frame. Returns (success, frame_bgr)."""
        if self._cap is None:
            return False, None
        return self._cap.read()

    def get_fps(self) -> float:
        if self._cap is None:
            return 30.0
        fps = self._cap.get(cv2.CAP_PROP_FPS)
        return fps if fps > 0 else 30.0

    @property
    def source_path(self) -> str | None:
        return self._source_path


class LiveFrameSource:
    """
    Latest-frame view over a VideoCaptureSource.

    The host pumps frames with grab(); detectors read whatever frame is newest.
    Until the first frame decodes the source reports not ready.
    """

    def __init__(self, capture: VideoCaptureSource) -> None:
        self._capture = capture
        self._latest: np.ndarray | None = None

    def grab(self) -> np.ndarray | None:
        """Read one frame from the stream. Returns it, or None on a failed read."""
        ok, frame = self._capture.read()
        if not ok or frame is None:
            return None
        self._latest = frame
        return frame

    def is_ready(self) -> bool:
        return self._latest is not None and self._latest.size > 0

    def read_frame(self) -> np.ndarray | None:
        return self._latest

    def snapshot(self) -> StillImageSource:
        """Freeze the current frame into a still image."""
        if self._latest is None:
            raise ValueError("No frame has been decoded yet")
        return StillImageSource(self._latest.copy())

    def clear(self) -> None:
        self._latest = None


class StillImageSource:
    """A static captured image. Always ready."""

    def __init__(self, image: np.ndarray) -> None:
        if image is None or image.size == 0:
            raise ValueError("Empty image")
        self._image = image
        self._key: str | None = None

    @classmethod
    def from_file(cls, path: str | Path) -> StillImageSource:
        image = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if image is None:
            raise ValueError(f"Could not decode image: {path}")
        return cls(image)

    @classmethod
    def from_base64(cls, data: str) -> StillImageSource:
        """Decode a base64 string or data URL ('data:image/jpeg;base64,...')."""
        if data.startswith("data:"):
            _, _, data = data.partition(",")
        try:
            raw = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 image: {e}") from e
        image = cv2.imdecode(np.frombuffer(raw, dtype=np.uint8), cv2.IMREAD_COLOR)
        if image is None:
            raise ValueError("Could not decode base64 image")
        return cls(image)

    @property
    def image(self) -> np.ndarray:
        return self._image

    @property
    def key(self) -> str:
        """Content hash; two stills with identical pixels share a key."""
        if self._key is None:
            digest = hashlib.sha1(self._image.tobytes())
            digest.update(str(self._image.shape).encode())
            self._key = digest.hexdigest()
        return self._key

    def is_ready(self) -> bool:
        return True

    def read_frame(self) -> np.ndarray:
        return self._image

    def encode(self, ext: str = ".jpg") -> bytes:
        ok, buf = cv2.imencode(ext, self._image)
        if not ok:
            raise ValueError(f"Could not encode image as {ext}")
        return buf.tobytes()
