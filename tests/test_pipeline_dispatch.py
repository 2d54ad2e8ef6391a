from __future__ import annotations

import asyncio

from conftest import FakeClock

from camrelay.core.metrics.collector import MetricsCollector
from camrelay.core.pipeline.dispatch import DetectionPipeline, InferenceDispatcher
from camrelay.core.types import Detection, PendingFrame


class RecordingDetector:
    """Async detector that tracks call order and overlapping calls."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls: list = []
        self.active = 0
        self.max_active = 0

    async def detect(self, payload):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            self.calls.append(payload)
            await asyncio.sleep(self.delay)
            return [Detection(label="person", score=0.9, xmin=0.1, ymin=0.1, xmax=0.5, ymax=0.5)]
        finally:
            self.active -= 1


class SyncDetector:
    def __init__(self):
        self.calls = []

    def detect(self, payload):
        self.calls.append(payload)
        return [{"label": "cup", "score": 0.5, "xmin": 0.0, "ymin": 0.0, "xmax": 1.0, "ymax": 1.0}]


class FailingDetector:
    def __init__(self, fail_on: set):
        self.fail_on = fail_on
        self.calls = []

    def detect(self, payload):
        self.calls.append(payload)
        if payload in self.fail_on:
            raise RuntimeError("model exploded")
        return []


def _metrics(clock=None) -> MetricsCollector:
    return MetricsCollector(clock=clock or FakeClock(0), system_probe=lambda: (0.0, 0.0))


def test_drop_under_load_f1_never_dispatched():
    detector = SyncDetector()
    metrics = _metrics()

    async def scenario():
        pipeline = DetectionPipeline(detector, max_queue_size=2, metrics=metrics)
        futures = [
            pipeline.submit(PendingFrame(frame_id=name, capture_ts=0, payload=name))
            for name in ("F1", "F2", "F3")
        ]
        assert pipeline.queue.size == 2
        results = await asyncio.gather(*futures)
        await pipeline.stop()
        return results

    r1, r2, r3 = asyncio.run(scenario())
    assert r1 is None
    assert (r2.frame_id, r3.frame_id) == ("F2", "F3")
    assert detector.calls == ["F2", "F3"]
    assert r2.detections[0].label == "cup"
    assert (metrics.total_frames, metrics.processed_frames, metrics.dropped_frames) == (3, 2, 1)


def test_fifo_order_and_at_most_one_inflight():
    detector = RecordingDetector(delay=0.005)

    async def scenario():
        pipeline = DetectionPipeline(detector, max_queue_size=10)
        futures = [pipeline.submit(PendingFrame(frame_id=i, capture_ts=0, payload=i)) for i in range(6)]
        results = await asyncio.gather(*futures)
        await pipeline.stop()
        return results

    results = asyncio.run(scenario())
    assert [r.frame_id for r in results] == list(range(6))
    assert detector.calls == list(range(6))
    assert detector.max_active == 1


def test_frames_enqueued_while_busy_are_served_in_order():
    detector = RecordingDetector(delay=0.01)

    async def scenario():
        pipeline = DetectionPipeline(detector, max_queue_size=2)
        first = pipeline.submit(PendingFrame(frame_id="a", capture_ts=0, payload="a"))
        await asyncio.sleep(0.002)  # "a" is now in flight
        later = [
            pipeline.submit(PendingFrame(frame_id=x, capture_ts=0, payload=x)) for x in ("b", "c", "d")
        ]
        results = await asyncio.gather(first, *later)
        await pipeline.stop()
        return results

    a, b, c, d = asyncio.run(scenario())
    # "a" was dispatched, so only the queued "b" was shed.
    assert a.frame_id == "a"
    assert b is None
    assert (c.frame_id, d.frame_id) == ("c", "d")
    assert detector.calls == ["a", "c", "d"]
    assert detector.max_active == 1


def test_detector_failure_is_fail_open_and_pipeline_keeps_draining():
    detector = FailingDetector(fail_on={"bad"})
    metrics = _metrics()

    async def scenario():
        pipeline = DetectionPipeline(detector, metrics=metrics)
        results = await asyncio.gather(
            pipeline.detect("1", 0, "bad"),
            pipeline.detect("2", 0, "good"),
        )
        status = pipeline.status()
        await pipeline.stop()
        return results, status

    (bad, good), status = asyncio.run(scenario())
    assert bad is not None and bad.detections == []
    assert good is not None and good.detections == []
    assert detector.calls == ["bad", "good"]
    assert status["failed"] == 1
    assert status["processed"] == 2
    assert metrics.processed_frames == 2


def test_dispatcher_stamps_recv_and_inference_ts():
    ticks = iter([1_100, 1_250])
    dispatcher = InferenceDispatcher(SyncDetector(), clock=lambda: next(ticks))
    frame = PendingFrame(frame_id=9, capture_ts=1_000, payload=None)

    result = asyncio.run(dispatcher.process(frame))

    assert (result.capture_ts, result.recv_ts, result.inference_ts) == (1_000, 1_100, 1_250)
    assert result.to_payload()["detections"][0] == {
        "label": "cup",
        "score": 0.5,
        "xmin": 0.0,
        "ymin": 0.0,
        "xmax": 1.0,
        "ymax": 1.0,
    }


def test_stop_resolves_in_flight_and_queued_callers_with_none():
    class BlockingDetector:
        def __init__(self):
            self.release = asyncio.Event()

        async def detect(self, payload):
            await self.release.wait()
            return []

    async def scenario():
        pipeline = DetectionPipeline(BlockingDetector(), max_queue_size=5)
        futures = [pipeline.submit(PendingFrame(frame_id=i, capture_ts=0)) for i in range(3)]
        await asyncio.sleep(0.01)
        assert pipeline.status()["isProcessing"] is True
        await pipeline.stop()
        return await asyncio.gather(*futures), pipeline.running

    results, running = asyncio.run(scenario())
    assert results == [None, None, None]
    assert running is False


def test_status_reports_queue_configuration():
    async def scenario():
        pipeline = DetectionPipeline(SyncDetector(), max_queue_size=3, drop_policy="newest", mode="server")
        status = pipeline.status()
        await pipeline.stop()
        return status

    status = asyncio.run(scenario())
    assert status["mode"] == "server"
    assert status["maxQueueSize"] == 3
    assert status["dropPolicy"] == "newest"
    assert status["running"] is False
