"""Inference dispatch: drains the admission queue through the detector.

A single consumer task pops frames strictly in admission order and awaits each
detector call before popping the next, so the detector is never re-entered.
Callers get an `asyncio.Future` per submitted frame; frames shed by the queue
resolve to `None` ("not processed").
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any, Protocol

from camrelay.core.metrics.collector import MetricsCollector
from camrelay.core.pipeline.admission import FrameAdmissionQueue
from camrelay.core.types import Detection, DetectionResult, FrameId, PendingFrame, now_ms

logger = logging.getLogger(__name__)


class Detector(Protocol):
    """External detection collaborator.

    `detect` may be a plain function (run in a worker thread) or a coroutine.
    It returns `Detection` objects or dicts with the same field names.
    """

    def detect(self, payload: Any) -> Any: ...


def _coerce_detections(raw: Any) -> list[Detection]:
    if not raw:
        return []
    out: list[Detection] = []
    for item in raw:
        if isinstance(item, Detection):
            out.append(item)
        else:
            out.append(
                Detection(
                    label=str(item["label"]),
                    score=float(item["score"]),
                    xmin=float(item["xmin"]),
                    ymin=float(item["ymin"]),
                    xmax=float(item["xmax"]),
                    ymax=float(item["ymax"]),
                )
            )
    return out


class InferenceDispatcher:
    """Serialized, fail-open access to a `Detector`."""

    def __init__(self, detector: Detector, clock: Callable[[], int] = now_ms) -> None:
        self.detector = detector
        self._clock = clock
        self._lock = asyncio.Lock()
        self._in_flight = False
        self.processed_count = 0
        self.failed_count = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def rebind(self) -> None:
        """Recreate the serialization lock for a new event loop."""

        self._lock = asyncio.Lock()
        self._in_flight = False

    async def process(self, frame: PendingFrame) -> DetectionResult:
        """Score one frame, stamping `recv_ts` and `inference_ts`.

        Detector errors are logged and converted into an empty detection list.
        """

        async with self._lock:
            frame.recv_ts = self._clock()
            self._in_flight = True
            try:
                detections = _coerce_detections(await self._invoke(frame.payload))
            except Exception:
                self.failed_count += 1
                logger.exception("Inference failed for frame %r", frame.frame_id)
                detections = []
            finally:
                self._in_flight = False
            frame.inference_ts = self._clock()
            self.processed_count += 1

        return DetectionResult(
            frame_id=frame.frame_id,
            capture_ts=frame.capture_ts,
            recv_ts=frame.recv_ts,
            inference_ts=frame.inference_ts,
            detections=detections,
        )

    async def _invoke(self, payload: Any) -> Any:
        detect = self.detector.detect
        if inspect.iscoroutinefunction(detect):
            return await detect(payload)
        result = await asyncio.to_thread(detect, payload)
        if inspect.isawaitable(result):
            result = await result
        return result


class DetectionPipeline:
    """Admission queue + single consumer + metrics recording for one detector."""

    def __init__(
        self,
        detector: Detector,
        max_queue_size: int = 10,
        drop_policy: str = "oldest",
        metrics: MetricsCollector | None = None,
        mode: str = "wasm",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.mode = mode
        self.metrics = metrics
        self.queue = FrameAdmissionQueue(
            maxsize=max_queue_size,
            drop_policy=drop_policy,
            on_drop=self._on_drop,
        )
        self.dispatcher = InferenceDispatcher(detector, clock=clock)
        self._waiters: dict[int, asyncio.Future[DetectionResult | None]] = {}
        self._worker: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the consumer task on the running loop.

        Safe to call multiple times; subsequent calls while running are ignored.
        A worker left behind by a previous (closed) event loop is replaced.
        """

        loop = asyncio.get_running_loop()
        if self.running and self._worker is not None and self._worker.get_loop() is loop:
            return
        self.queue.rebind()
        self.dispatcher.rebind()
        self._worker = loop.create_task(self._drain_loop())

    async def stop(self) -> None:
        """Stop the consumer and resolve every still-queued caller with `None`."""

        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        for frame in self.queue.clear():
            self._resolve(frame, None)

    def submit(self, frame: PendingFrame) -> asyncio.Future[DetectionResult | None]:
        """Admit a frame; the returned future resolves once it is scored or shed."""

        self.start()
        future: asyncio.Future[DetectionResult | None] = asyncio.get_running_loop().create_future()
        self._waiters[id(frame)] = future
        self.queue.enqueue(frame)
        return future

    async def detect(self, frame_id: FrameId, capture_ts: int, payload: Any = None) -> DetectionResult | None:
        """Submit a frame and wait for its outcome (`None` when it was dropped)."""

        return await self.submit(PendingFrame(frame_id=frame_id, capture_ts=capture_ts, payload=payload))

    def status(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "running": self.running,
            "queueSize": self.queue.size,
            "maxQueueSize": self.queue.maxsize,
            "dropPolicy": self.queue.drop_policy,
            "isProcessing": self.dispatcher.in_flight,
            "processed": self.dispatcher.processed_count,
            "failed": self.dispatcher.failed_count,
            "dropped": self.queue.dropped_count,
        }

    async def _drain_loop(self) -> None:
        logger.debug("Drain loop started")
        while True:
            frame = await self.queue.get()
            try:
                result = await self.dispatcher.process(frame)
            except asyncio.CancelledError:
                self._resolve(frame, None)
                raise
            if self.metrics is not None:
                try:
                    self.metrics.record_frame(result)
                except Exception:
                    logger.exception("Failed to record metrics for frame %r", frame.frame_id)
            self._resolve(frame, result)

    def _on_drop(self, frame: PendingFrame) -> None:
        if self.metrics is not None:
            self.metrics.record_dropped_frame()
        self._resolve(frame, None)

    def _resolve(self, frame: PendingFrame, result: DetectionResult | None) -> None:
        future = self._waiters.pop(id(frame), None)
        if future is not None and not future.done():
            future.set_result(result)
