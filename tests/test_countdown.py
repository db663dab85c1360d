"""
Countdown / auto-capture tests: exactly-once firing, countdown math, document gate.
"""

from __future__ import annotations

import logging

import pytest

from capture_core.countdown import (
    AutoCaptureCoordinator,
    CaptureGate,
    frames_remaining,
    seconds_remaining,
)
from capture_core.feedback import Feedback
from helpers import FAR_DOCUMENT, GOOD_DOCUMENT, GOOD_FACE, NO_FACE, OFF_CENTER_FACE


class FakeHandle:
    def __init__(self):
        self.stops = 0

    def stop(self):
        self.stops += 1


# ─── Countdown math ───────────────────────────────────────────

@pytest.mark.parametrize(
    "consecutive, expected",
    [(0, 5), (1, 5), (15, 2), (16, 1), (19, 1), (20, 0), (25, 0)],
)
def test_seconds_remaining_at_250ms(consecutive, expected):
    assert seconds_remaining(consecutive, 20, 250) == expected


def test_frames_remaining_never_negative():
    assert frames_remaining(25, 20) == 0
    assert frames_remaining(15, 20) == 5


def test_seconds_remaining_rejects_bad_interval():
    with pytest.raises(ValueError):
        seconds_remaining(0, 20, 0)


# ─── Auto capture ─────────────────────────────────────────────

def test_fires_exactly_once_on_twentieth_success():
    fired_at = []
    seen = 0

    def capture():
        fired_at.append(seen)

    coordinator = AutoCaptureCoordinator(capture, required_successes=20, interval_ms=250)
    handle = FakeHandle()
    coordinator.attach(handle)

    for _ in range(35):
        seen += 1
        coordinator.on_result(GOOD_FACE)

    assert fired_at == [20]
    assert handle.stops == 1
    assert coordinator.is_capturing


def test_status_after_fifteen_successes():
    coordinator = AutoCaptureCoordinator(lambda: None, required_successes=20, interval_ms=250)
    for _ in range(15):
        status = coordinator.on_result(GOOD_FACE)
    assert status.consecutive_successes == 15
    assert status.frames_remaining == 5
    assert status.seconds_remaining == 2
    assert status.feedback is Feedback.HOLD_STILL
    assert not status.is_capturing


def test_bad_frame_restarts_countdown():
    fired = []
    coordinator = AutoCaptureCoordinator(lambda: fired.append(1), 5, 250)
    for _ in range(4):
        coordinator.on_result(GOOD_FACE)
    status = coordinator.on_result(OFF_CENTER_FACE)
    assert status.consecutive_successes == 0
    assert status.feedback is Feedback.CENTER_FACE
    for _ in range(4):
        coordinator.on_result(GOOD_FACE)
    assert fired == []
    coordinator.on_result(GOOD_FACE)
    assert fired == [1]


def test_results_after_capture_are_ignored():
    updates = []
    coordinator = AutoCaptureCoordinator(lambda: None, 2, 250, on_update=updates.append)
    coordinator.on_result(GOOD_FACE)
    final = coordinator.on_result(GOOD_FACE)
    assert final.is_capturing
    assert coordinator.on_result(NO_FACE) is None
    assert coordinator.on_result(GOOD_FACE) is None
    assert coordinator.status is final
    assert len(updates) == 2


def test_reentrant_result_during_capture_is_ignored():
    """A result arriving while the capture action runs cannot trigger a second capture."""
    calls = []
    holder = {}

    def capture():
        calls.append(1)
        assert holder["c"].on_result(GOOD_FACE) is None

    holder["c"] = AutoCaptureCoordinator(capture, 1, 250)
    holder["c"].on_result(GOOD_FACE)
    assert calls == [1]


def test_capture_action_error_is_logged(caplog):
    def capture():
        raise OSError("camera gone")

    coordinator = AutoCaptureCoordinator(capture, 1, 250)
    with caplog.at_level(logging.ERROR, logger="capture_core.countdown"):
        status = coordinator.on_result(GOOD_FACE)
    assert status.is_capturing
    assert "Capture action failed" in caplog.text


# ─── Manual gate ──────────────────────────────────────────────

def test_far_document_keeps_button_disabled():
    gate = CaptureGate()
    status = gate.on_result(FAR_DOCUMENT)
    assert not status.capture_enabled
    assert status.feedback is Feedback.MOVE_CLOSER
    assert not gate.claim()


def test_gate_follows_composite_without_countdown():
    statuses = []
    gate = CaptureGate(on_update=statuses.append)
    gate.on_result(GOOD_DOCUMENT)
    assert gate.capture_enabled
    gate.on_result(FAR_DOCUMENT)
    assert not gate.capture_enabled
    gate.on_result(GOOD_DOCUMENT)
    assert [s.capture_enabled for s in statuses] == [True, False, True]
    assert statuses[-1].feedback is Feedback.READY


def test_gate_claim_only_once():
    gate = CaptureGate()
    gate.on_result(GOOD_DOCUMENT)
    assert gate.claim()
    assert not gate.claim()
    assert not gate.capture_enabled
    assert gate.on_result(GOOD_DOCUMENT) is None
