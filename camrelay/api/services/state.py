"""In-process state for settings, the signaling broker, metrics and the pipeline.

FastAPI routes use this module to access the per-process singletons. Each one
is created lazily on first use and torn down by `shutdown()`.
"""

from __future__ import annotations

import logging
import time
from threading import RLock

from camrelay.core.config.settings import RelaySettings, load_settings
from camrelay.core.detectors.mock import MockDetector
from camrelay.core.metrics.collector import MetricsCollector
from camrelay.core.pipeline.dispatch import DetectionPipeline, Detector
from camrelay.core.signaling.broker import RoomBroker
from camrelay.core.signaling.registry import SessionRegistry

logger = logging.getLogger(__name__)

_settings: RelaySettings | None = None
_broker: RoomBroker | None = None
_metrics: MetricsCollector | None = None
_pipeline: DetectionPipeline | None = None
_started_at = time.monotonic()
_lock = RLock()


def get_settings() -> RelaySettings:
    """Return cached settings, loading them on first use."""

    global _settings
    with _lock:
        if _settings is None:
            _settings = load_settings()
    return _settings


def uptime() -> float:
    """Seconds since this module was imported."""

    return time.monotonic() - _started_at


def get_broker() -> RoomBroker:
    """Return the singleton broker (and its session registry)."""

    global _broker
    with _lock:
        if _broker is None:
            _broker = RoomBroker(
                SessionRegistry(),
                require_same_room=get_settings().require_same_room,
            )
    return _broker


def get_metrics() -> MetricsCollector:
    """Return the singleton metrics collector, starting its system sampler."""

    global _metrics
    with _lock:
        if _metrics is None:
            settings = get_settings()
            _metrics = MetricsCollector(
                window_ms=settings.metrics_window_ms,
                max_frame_history=settings.max_frame_history,
                system_sample_interval_s=settings.system_sample_interval_s,
            )
            _metrics.start_system_monitoring()
    return _metrics


def make_detector(settings: RelaySettings) -> tuple[Detector, str]:
    """Build the detector for the configured mode.

    Returns the detector and the effective mode: a server-mode model that
    fails to load falls back to the browser ("wasm") mode.
    """

    if settings.mode == "server":
        try:
            from camrelay.core.detectors.yolo import YoloDetector

            return YoloDetector(settings.model_name, conf=settings.confidence), "server"
        except Exception:
            logger.exception("Failed to initialize server-side detection, falling back to wasm mode")
    return MockDetector(), "wasm"


def get_pipeline() -> DetectionPipeline:
    """Return the singleton detection pipeline.

    The consumer task starts on the first submitted frame.
    """

    global _pipeline
    with _lock:
        if _pipeline is None:
            settings = get_settings()
            detector, mode = make_detector(settings)
            _pipeline = DetectionPipeline(
                detector,
                max_queue_size=settings.max_queue_size,
                drop_policy=settings.drop_policy,
                metrics=get_metrics(),
                mode=mode,
            )
    return _pipeline


async def shutdown() -> None:
    """Stop the pipeline and sampler and forget every peer and room."""

    global _broker, _metrics, _pipeline
    with _lock:
        pipeline, metrics, broker = _pipeline, _metrics, _broker
        _pipeline = _metrics = _broker = None
    if pipeline is not None:
        await pipeline.stop()
    if metrics is not None:
        metrics.stop_system_monitoring()
    if broker is not None:
        broker.clear()
