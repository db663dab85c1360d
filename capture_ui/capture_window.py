"""
Capture window: the host view for one selfie or document capture.

Showing the window mounts a capture session (camera + polling loop); closing it
unmounts the session. Draws the detector geometry over the preview.
"""

from __future__ import annotations

import logging

import cv2
import numpy as np
from PySide6.QtCore import Qt, Slot
from PySide6.QtGui import QImage, QPixmap
from PySide6.QtWidgets import (
    QFileDialog,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from capture_core.capture import StillImageSource, VideoCaptureSource
from capture_core.config import FlowSettings
from capture_core.countdown import CountdownStatus, GateStatus
from capture_core.models import Validation
from capture_core.runner import CaptureSessionRunner
from capture_ui.panels import FeedbackPanel, LogsPanel, QtLogHandler, ResultsPanel
from detectors.base import DetectorPluginBase

logger = logging.getLogger(__name__)

_OVERLAY_COLOR = (200, 200, 200)
_GOOD_COLOR = (0, 200, 0)
_BAD_COLOR = (0, 165, 255)


def _to_pixmap(frame_bgr: np.ndarray, target: QLabel) -> QPixmap:
    h, w = frame_bgr.shape[:2]
    qimg = QImage(frame_bgr.data, w, h, 3 * w, QImage.Format.Format_BGR888)
    return QPixmap.fromImage(qimg).scaled(
        target.size(),
        Qt.AspectRatioMode.KeepAspectRatio,
        Qt.TransformationMode.SmoothTransformation,
    )


class CaptureWindow(QWidget):
    """Preview, live feedback and (for manual flows) the capture button."""

    def __init__(
        self,
        detector: DetectorPluginBase,
        flow: FlowSettings,
        camera_index: int = 0,
        video_path: str | None = None,
    ) -> None:
        super().__init__()
        self.setWindowTitle(f"{detector.display_name} capture")
        self._detector = detector
        self._flow = flow
        self._camera_index = camera_index
        self._video_path = video_path
        self._capture = VideoCaptureSource()
        self._runner: CaptureSessionRunner | None = None
        self._last_status: CountdownStatus | GateStatus | None = None
        self._still: StillImageSource | None = None

        layout = QHBoxLayout(self)

        # --- Center: video ---
        self._video_label = QLabel()
        self._video_label.setMinimumSize(640, 480)
        self._video_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._video_label.setStyleSheet("background-color: #1e1e1e; color: #888;")
        self._video_label.setText("No video")
        layout.addWidget(self._video_label, stretch=1)

        # --- Right: feedback, capture controls, tabs ---
        side = QWidget()
        side_layout = QVBoxLayout(side)
        self._feedback_panel = FeedbackPanel()
        side_layout.addWidget(self._feedback_panel)
        self._capture_btn = QPushButton("Capture")
        self._capture_btn.setEnabled(False)
        self._capture_btn.setVisible(not flow.auto_capture)
        self._capture_btn.clicked.connect(self._on_capture_clicked)
        side_layout.addWidget(self._capture_btn)
        self._save_btn = QPushButton("Save Photo")
        self._save_btn.setEnabled(False)
        self._save_btn.clicked.connect(self._on_save_photo)
        side_layout.addWidget(self._save_btn)
        tabs = QTabWidget()
        self._results_panel = ResultsPanel()
        tabs.addTab(self._results_panel, "Results")
        self._logs_panel = LogsPanel()
        tabs.addTab(self._logs_panel, "Logs")
        side_layout.addWidget(tabs, stretch=1)
        layout.addWidget(side)

        self._log_handler = QtLogHandler(self._logs_panel)
        logging.getLogger().addHandler(self._log_handler)
        self.resize(1100, 650)

    def showEvent(self, event) -> None:
        super().showEvent(event)
        if self._runner is None and self._still is None:
            self._start()

    def _start(self) -> None:
        if self._video_path:
            opened = self._capture.open_file(self._video_path)
            source = self._video_path
        else:
            opened = self._capture.open_camera(self._camera_index)
            source = f"camera {self._camera_index}"
        if not opened:
            self._logs_panel.append(f"Failed to open {source}.")
            return
        self._logs_panel.append(f"Opened {source}.")
        self._runner = CaptureSessionRunner(self._capture, self._detector, self._flow)
        self._runner.frame_ready.connect(self._on_frame_ready)
        self._runner.status_changed.connect(self._on_status_changed)
        self._runner.captured.connect(self._on_captured)
        self._runner.validated.connect(self._on_validated)
        self._runner.error_occurred.connect(self._on_runner_error)
        self._runner.stopped.connect(self._on_runner_stopped)
        self._runner.start()

    def _stop(self) -> None:
        if self._runner is None:
            return
        self._runner.stop()
        self._runner.finish_thread()
        self._runner = None
        self._capture.close()

    @Slot(object, object)
    def _on_frame_ready(self, frame: np.ndarray, stats: dict) -> None:
        annotated = self._draw_overlay(frame)
        self._video_label.setPixmap(_to_pixmap(annotated, self._video_label))
        results = {"loop": stats}
        if self._last_status is not None:
            results["status"] = self._last_status.to_dict()
        self._results_panel.update_results(results)

    def _draw_overlay(self, frame: np.ndarray) -> np.ndarray:
        """Guide oval for faces; colour reflects whether the last poll passed."""
        annotated = frame.copy()
        h, w = annotated.shape[:2]
        status = self._last_status
        ok = status is not None and (
            status.composite if isinstance(status, CountdownStatus) else status.capture_enabled
        )
        color = _GOOD_COLOR if ok else _BAD_COLOR
        if self._detector.kind == "face":
            settings = self._detector.settings
            overlay_w = w * settings["overlay_width_ratio"]
            overlay_h = overlay_w * settings["overlay_aspect"]
            cv2.ellipse(
                annotated,
                (w // 2, h // 2),
                (int(overlay_w / 2), int(overlay_h / 2)),
                0, 0, 360,
                color if status is not None else _OVERLAY_COLOR,
                2,
                cv2.LINE_AA,
            )
        else:
            margin = int(min(w, h) * 0.05)
            cv2.rectangle(annotated, (margin, margin), (w - margin, h - margin), color, 2)
        return annotated

    @Slot(object)
    def _on_status_changed(self, status: CountdownStatus | GateStatus) -> None:
        self._last_status = status
        self._feedback_panel.update_status(status)
        if isinstance(status, GateStatus):
            self._capture_btn.setEnabled(status.capture_enabled)

    def _on_capture_clicked(self) -> None:
        if self._runner is not None:
            self._capture_btn.setEnabled(False)
            self._runner.request_capture()

    @Slot(object)
    def _on_captured(self, still: StillImageSource) -> None:
        self._still = still
        self._capture_btn.setEnabled(False)
        self._feedback_panel.show_captured()
        self._video_label.setPixmap(_to_pixmap(still.image, self._video_label))
        self._save_btn.setEnabled(True)

    @Slot(object)
    def _on_validated(self, validation: Validation) -> None:
        self._feedback_panel.show_validation(validation)
        self._results_panel.update_results({"validation": validation.to_dict()})
        if self._still is not None:
            self._video_label.setPixmap(
                _to_pixmap(self._draw_geometry(self._still.image, validation), self._video_label)
            )

    def _draw_geometry(self, image: np.ndarray, validation: Validation) -> np.ndarray:
        annotated = image.copy()
        result = validation.result
        box = getattr(result, "box", None)
        corners = getattr(result, "corners", None)
        if box is not None:
            cv2.rectangle(
                annotated,
                (int(box.x), int(box.y)),
                (int(box.x + box.width), int(box.y + box.height)),
                _GOOD_COLOR,
                2,
            )
        if corners is not None:
            pts = np.array(corners.as_list(), dtype=np.int32)
            cv2.polylines(annotated, [pts], True, _GOOD_COLOR, 2, cv2.LINE_AA)
        return annotated

    def _on_save_photo(self) -> None:
        if self._still is None:
            return
        path, _ = QFileDialog.getSaveFileName(self, "Save Photo", "", "JPEG (*.jpg);;PNG (*.png)")
        if not path:
            return
        if cv2.imwrite(path, self._still.image):
            self._logs_panel.append(f"Saved photo: {path}")
        else:
            self._logs_panel.append(f"Failed to save: {path}")

    @Slot(str)
    def _on_runner_error(self, message: str) -> None:
        self._logs_panel.append(f"Error: {message}")

    @Slot()
    def _on_runner_stopped(self) -> None:
        if self._runner is not None:
            self._runner.finish_thread()
            self._runner = None
        self._capture.close()

    def closeEvent(self, event) -> None:
        self._stop()
        logging.getLogger().removeHandler(self._log_handler)
        event.accept()
