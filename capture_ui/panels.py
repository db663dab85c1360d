"""
Right-side panels: Feedback (live guidance + countdown), Results (JSON), Logs.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from PySide6.QtCore import QObject, Qt, Signal
from PySide6.QtWidgets import (
    QLabel,
    QPlainTextEdit,
    QVBoxLayout,
    QWidget,
)

from capture_core.countdown import CountdownStatus, GateStatus
from capture_core.feedback import Feedback
from capture_core.models import Validation, ValidationOutcome

_FEEDBACK_TEXT = {
    Feedback.NO_FACE: "Position your face in the oval",
    Feedback.CENTER_FACE: "Center your face",
    Feedback.LOOK_STRAIGHT: "Look straight at the camera",
    Feedback.ADJUST_DISTANCE: "Move closer or further away",
    Feedback.HOLD_STILL: "Hold still",
    Feedback.NO_DOCUMENT: "Place the document in the frame",
    Feedback.MOVE_CLOSER: "Move closer",
    Feedback.READY: "Ready to capture",
    Feedback.SEARCHING: "Searching...",
}

_OUTCOME_STYLE = {
    ValidationOutcome.SUCCESS: ("Looks good", "#2e7d32"),
    ValidationOutcome.WARNING: ("Captured, but quality may be low", "#ef6c00"),
    ValidationOutcome.FAILURE: ("Nothing detected, please retake", "#c62828"),
}


def _pretty_json(obj: Any) -> str:
    """Pretty-print dict/list for display."""
    try:
        return json.dumps(obj, indent=2, default=str)
    except (TypeError, ValueError):
        return str(obj)


class FeedbackPanel(QWidget):
    """Live guidance text, the auto-capture countdown and the validation outcome."""

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        layout = QVBoxLayout(self)
        self._message = QLabel("Starting camera...")
        self._message.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._message.setStyleSheet("font-size: 18px;")
        self._countdown = QLabel("")
        self._countdown.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._countdown.setStyleSheet("font-size: 36px; font-weight: bold;")
        self._outcome = QLabel("")
        self._outcome.setAlignment(Qt.AlignmentFlag.AlignCenter)
        for w in (self._message, self._countdown, self._outcome):
            layout.addWidget(w)
        layout.addStretch()

    def update_status(self, status: CountdownStatus | GateStatus) -> None:
        self._message.setText(_FEEDBACK_TEXT.get(status.feedback, status.feedback.value))
        if isinstance(status, CountdownStatus) and status.consecutive_successes > 0:
            self._countdown.setText(str(status.seconds_remaining))
        else:
            self._countdown.setText("")

    def show_captured(self) -> None:
        self._message.setText("Checking photo...")
        self._countdown.setText("")

    def show_validation(self, validation: Validation) -> None:
        text, color = _OUTCOME_STYLE[validation.outcome]
        self._outcome.setText(text)
        self._outcome.setStyleSheet(f"font-size: 16px; color: {color};")


class ResultsPanel(QWidget):
    """Shows the latest status and loop stats as pretty-printed JSON."""

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        self._text = QPlainTextEdit(self)
        self._text.setReadOnly(True)
        self._text.setPlaceholderText("Results will appear here while the camera is running.")
        layout.addWidget(self._text, stretch=1)

    def update_results(self, results: dict[str, Any] | None) -> None:
        if results is None:
            self._text.setPlainText("")
            return
        self._text.setPlainText(_pretty_json(results))


class LogsPanel(QWidget):
    """Shows application log messages and errors."""

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        layout = QVBoxLayout(self)
        self._text = QPlainTextEdit(self)
        self._text.setReadOnly(True)
        layout.addWidget(self._text)

    def append(self, message: str) -> None:
        self._text.appendPlainText(message)
        # Auto-scroll to bottom
        scrollbar = self._text.verticalScrollBar()
        scrollbar.setValue(scrollbar.maximum())


class _LogBridge(QObject):
    message = Signal(str)


class QtLogHandler(logging.Handler):
    """Forwards log records to a LogsPanel through a queued signal (any thread)."""

    def __init__(self, panel: LogsPanel, level: int = logging.INFO) -> None:
        super().__init__(level)
        self._bridge = _LogBridge()
        self._bridge.message.connect(panel.append)
        self.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", "%H:%M:%S"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._bridge.message.emit(self.format(record))
        except RuntimeError:
            # Panel already destroyed during shutdown
            pass
