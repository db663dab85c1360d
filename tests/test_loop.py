"""
Polling loop tests: serialization, cancellation, readiness skips, error recovery.
Uses small real intervals; no camera needed.
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from capture_core import loop
from capture_core.models import DetectionResult, FaceDetectionResult
from capture_core.stability import StabilityAccumulator
from helpers import GOOD_FACE, FakeFrameSource, RecordingDetector


# ─── Serialization ────────────────────────────────────────────

def test_slow_detector_calls_never_overlap():
    """A detector slower than the interval stretches the cadence instead
    of running twice at once. Spacing between calls >= detector latency."""

    async def scenario():
        detector = RecordingDetector(delay=0.06)
        handle = loop.start(FakeFrameSource(), detector.detect, 25, lambda r: None)
        await asyncio.sleep(0.45)
        handle.stop()
        await handle.wait()
        return detector

    detector = asyncio.run(scenario())

    assert detector.calls >= 3
    assert detector.max_outstanding == 1
    gaps = [b - a for a, b in zip(detector.starts, detector.starts[1:])]
    assert min(gaps) >= 0.06 - 0.005


def test_results_delivered_in_poll_order():
    async def scenario():
        counter = iter(range(100))

        async def detect(source):
            n = next(counter)
            await asyncio.sleep(0.001 * (5 - n % 5))
            return FaceDetectionResult(detected=bool(n % 2))

        seen: list[bool] = []
        handle = loop.start(FakeFrameSource(), detect, 5, lambda r: seen.append(r.detected))
        await asyncio.sleep(0.15)
        handle.stop()
        await handle.wait()
        return seen

    seen = asyncio.run(scenario())
    assert len(seen) >= 4
    assert seen == [bool(i % 2) for i in range(len(seen))]


# ─── Cancellation ─────────────────────────────────────────────

def test_stop_during_in_flight_call_discards_result():
    """The pending call still completes, but its result never reaches the
    accumulator and no further call is made."""

    async def scenario():
        release = asyncio.Event()
        calls = 0

        async def detect(source):
            nonlocal calls
            calls += 1
            await release.wait()
            return GOOD_FACE

        accumulator = StabilityAccumulator(required=5)
        delivered = []

        def on_result(result):
            delivered.append(result)
            accumulator.evaluate(result)

        handle = loop.start(FakeFrameSource(), detect, 10, on_result)
        await asyncio.sleep(0.02)
        assert calls == 1
        handle.stop()
        release.set()
        await asyncio.sleep(0.05)
        return calls, delivered, accumulator, handle

    calls, delivered, accumulator, handle = asyncio.run(scenario())

    assert calls == 1
    assert delivered == []
    assert accumulator.consecutive_successes == 0
    assert not handle.running


def test_stop_twice_is_a_noop():
    async def scenario():
        detector = RecordingDetector()
        results = []
        handle = loop.start(FakeFrameSource(), detector.detect, 10, results.append)
        await asyncio.sleep(0.035)
        handle.stop()
        count = len(results)
        handle.stop()
        loop.stop(handle)
        await asyncio.sleep(0.03)
        return handle, count, results

    handle, count, results = asyncio.run(scenario())
    assert not handle.running
    assert len(results) == count


def test_stop_none_handle_is_safe():
    loop.stop(None)


def test_stop_from_inside_result_callback():
    """Stopping from on_result (as a capture does) ends the loop after that result."""

    async def scenario():
        detector = RecordingDetector()
        results = []
        holder = {}

        def on_result(result):
            results.append(result)
            if len(results) == 3:
                holder["handle"].stop()

        holder["handle"] = loop.start(FakeFrameSource(), detector.detect, 5, on_result)
        await asyncio.sleep(0.1)
        await holder["handle"].wait()
        return detector, results

    detector, results = asyncio.run(scenario())
    assert len(results) == 3
    assert detector.calls == 3


def test_stop_after_event_loop_closed():
    async def scenario():
        return loop.start(FakeFrameSource(), RecordingDetector().detect, 10, lambda r: None)

    handle = asyncio.run(scenario())
    handle.stop()
    assert not handle.running


def test_independent_handles_do_not_interfere():
    async def scenario():
        a, b = RecordingDetector(), RecordingDetector()
        ha = loop.start(FakeFrameSource(), a.detect, 5, lambda r: None, name="doc")
        hb = loop.start(FakeFrameSource(), b.detect, 5, lambda r: None, name="selfie")
        await asyncio.sleep(0.03)
        ha.stop()
        before = b.calls
        await asyncio.sleep(0.03)
        hb.stop()
        return ha, hb, before, b.calls

    ha, hb, before, after = asyncio.run(scenario())
    assert not ha.running and not hb.running
    assert after > before


# ─── Readiness and failures ───────────────────────────────────

def test_not_ready_source_skips_detector(caplog):
    """Frames that have not decoded yet yield the neutral fallback without a detector call."""

    async def scenario():
        source = FakeFrameSource(ready=False)
        detector = RecordingDetector()
        results = []
        handle = loop.start(
            source, detector.detect, 5, results.append, fallback=FaceDetectionResult.empty()
        )
        await asyncio.sleep(0.03)
        skipped_calls = detector.calls
        skipped = list(results)
        source.ready = True
        await asyncio.sleep(0.03)
        handle.stop()
        return skipped_calls, skipped, results, handle

    with caplog.at_level(logging.DEBUG, logger="capture_core.loop"):
        skipped_calls, skipped, results, handle = asyncio.run(scenario())

    assert skipped_calls == 0
    assert skipped
    assert all(isinstance(r, FaceDetectionResult) and not r.detected for r in skipped)
    assert results[-1] == GOOD_FACE
    assert handle.stats.skipped == len(skipped)
    # Only the start/stop debug lines; skipped ticks are silent
    assert not [r for r in caplog.records if r.levelno >= logging.INFO]
    assert not [r for r in caplog.records if "ready" in r.getMessage()]


class FlakyReadySource(FakeFrameSource):
    """Readiness check that raises on its first call."""

    def __init__(self) -> None:
        super().__init__()
        self.checks = 0

    def is_ready(self) -> bool:
        self.checks += 1
        if self.checks == 1:
            raise RuntimeError("decoder gone")
        return super().is_ready()


def test_readiness_error_becomes_not_detected(caplog):
    async def scenario():
        results = []
        handle = loop.start(
            FlakyReadySource(), RecordingDetector().detect, 5, results.append,
            fallback=FaceDetectionResult.empty(),
        )
        await asyncio.sleep(0.04)
        running = handle.running
        handle.stop()
        await handle.wait()
        return results, running, handle

    with caplog.at_level(logging.WARNING, logger="capture_core.loop"):
        results, running, _ = asyncio.run(scenario())

    assert running
    assert results[0] == FaceDetectionResult.empty()
    assert GOOD_FACE in results[1:]
    assert "decoder gone" in caplog.text


def test_detector_exception_becomes_not_detected(caplog):
    async def scenario():
        calls = 0

        async def detect(source):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("video frame decode error")
            return GOOD_FACE

        results = []
        handle = loop.start(FakeFrameSource(), detect, 5, results.append)
        await asyncio.sleep(0.04)
        handle.stop()
        return results

    with caplog.at_level(logging.WARNING, logger="capture_core.loop"):
        results = asyncio.run(scenario())

    assert not results[0].detected
    assert results[1] == GOOD_FACE
    assert "video frame decode error" in caplog.text


def test_malformed_result_becomes_not_detected(caplog):
    async def scenario():
        async def detect(source):
            return {"detected": True}

        results = []
        handle = loop.start(FakeFrameSource(), detect, 5, results.append)
        await asyncio.sleep(0.02)
        handle.stop()
        return results

    with caplog.at_level(logging.WARNING, logger="capture_core.loop"):
        results = asyncio.run(scenario())

    assert results
    assert all(type(r) is DetectionResult and not r.detected for r in results)
    assert "treating as not detected" in caplog.text


def test_callback_exception_does_not_kill_loop(caplog):
    async def scenario():
        results = []

        def on_result(result):
            results.append(result)
            if len(results) == 1:
                raise ValueError("boom")

        handle = loop.start(FakeFrameSource(), RecordingDetector().detect, 5, on_result)
        await asyncio.sleep(0.04)
        handle.stop()
        return results

    with caplog.at_level(logging.ERROR, logger="capture_core.loop"):
        results = asyncio.run(scenario())
    assert len(results) >= 2


def test_invalid_interval_rejected():
    with pytest.raises(ValueError):
        loop.start(FakeFrameSource(), RecordingDetector().detect, 0, lambda r: None)
