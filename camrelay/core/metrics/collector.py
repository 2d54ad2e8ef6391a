"""Rolling pipeline metrics.

The collector keeps per-frame latency records, bandwidth samples and periodic
CPU/memory samples inside a time window (and a hard cap for frames). Snapshots
are recomputed on every read from whatever is still inside the window.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

import psutil

from camrelay.core.metrics.stats import LatencyStats, SeriesStats, latency_stats, series_stats
from camrelay.core.types import DetectionResult, FrameRecord, now_ms

logger = logging.getLogger(__name__)

SystemProbe = Callable[[], tuple[float, float]]

RECENT_FRAMES = 10


@dataclass(frozen=True)
class FrameCounters:
    total: int = 0
    processed: int = 0
    dropped: int = 0
    drop_rate: float = 0.0
    fps: float = 0.0


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time view of the rolling buffers."""

    timestamp: int
    duration: float
    frames: FrameCounters
    latency: dict[str, LatencyStats]
    bandwidth: dict[str, SeriesStats]
    system: dict[str, SeriesStats]
    recent_frames: list[FrameRecord] = field(default_factory=list)
    sample_count: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class _Sample:
    timestamp: int
    value: float


class ProcessProbe:
    """CPU percent and resident memory (MB) of the current process."""

    def __init__(self) -> None:
        self._process = psutil.Process()
        # First call primes psutil's CPU counters and always reports 0.0.
        self._process.cpu_percent(interval=None)

    def __call__(self) -> tuple[float, float]:
        cpu = float(self._process.cpu_percent(interval=None))
        memory_mb = self._process.memory_info().rss / 1024 / 1024
        return cpu, float(memory_mb)


class MetricsCollector:
    """Aggregates frame, bandwidth and system metrics for one process.

    Args:
        window_ms: Rolling window width; older samples are evicted.
        max_frame_history: Hard cap on retained frame records.
        system_sample_interval_s: Period of the background CPU/memory sampler.
        clock: Millisecond clock (injectable for tests).
        system_probe: Callable returning `(cpu_percent, memory_mb)`.
    """

    def __init__(
        self,
        window_ms: int = 30_000,
        max_frame_history: int = 1000,
        system_sample_interval_s: float = 5.0,
        clock: Callable[[], int] = now_ms,
        system_probe: SystemProbe | None = None,
    ) -> None:
        self.window_ms = int(window_ms)
        self.max_frame_history = int(max_frame_history)
        self.system_sample_interval_s = float(system_sample_interval_s)
        self._clock = clock
        self._probe = system_probe
        self._lock = threading.Lock()

        self._frames: deque[FrameRecord] = deque()
        self._uplink: deque[_Sample] = deque()
        self._downlink: deque[_Sample] = deque()
        self._cpu: deque[_Sample] = deque()
        self._memory: deque[_Sample] = deque()

        self.total_frames = 0
        self.processed_frames = 0
        self.dropped_frames = 0
        self.last_reset_ms = self._clock()

        self._sampler: threading.Thread | None = None
        self._sampler_stop = threading.Event()

    # Recording

    def record_frame(self, result: DetectionResult | dict[str, Any]) -> FrameRecord:
        """Record a completed frame and compute its latency components."""

        if isinstance(result, DetectionResult):
            frame_id = result.frame_id
            capture_ts, recv_ts, inference_ts = result.capture_ts, result.recv_ts, result.inference_ts
            detection_count = len(result.detections)
        else:
            frame_id = result.get("frame_id")
            capture_ts = int(result["capture_ts"])
            recv_ts = int(result["recv_ts"])
            inference_ts = int(result["inference_ts"])
            detection_count = len(result.get("detections") or [])

        now = self._clock()
        record = FrameRecord(
            frame_id=frame_id,
            capture_ts=capture_ts,
            recv_ts=recv_ts,
            inference_ts=inference_ts,
            overlay_ts=now,
            network_latency=float(recv_ts - capture_ts),
            inference_latency=float(inference_ts - recv_ts),
            end_to_end_latency=float(now - capture_ts),
            detection_count=detection_count,
            timestamp=now,
        )
        with self._lock:
            self._frames.append(record)
            self.total_frames += 1
            self.processed_frames += 1
            self._evict_frames(now)
        return record

    def record_dropped_frame(self) -> None:
        """Count a frame shed by the admission queue (no latency data)."""

        with self._lock:
            self.dropped_frames += 1
            self.total_frames += 1

    def record_bandwidth(self, uplink: float, downlink: float) -> None:
        now = self._clock()
        with self._lock:
            self._uplink.append(_Sample(now, float(uplink)))
            self._downlink.append(_Sample(now, float(downlink)))
            cutoff = now - self.window_ms
            self._evict_samples(self._uplink, cutoff)
            self._evict_samples(self._downlink, cutoff)

    def sample_system(self) -> tuple[float, float]:
        """Take one CPU/memory sample now."""

        if self._probe is None:
            self._probe = ProcessProbe()
        cpu, memory_mb = self._probe()
        now = self._clock()
        with self._lock:
            self._cpu.append(_Sample(now, float(cpu)))
            self._memory.append(_Sample(now, float(memory_mb)))
            cutoff = now - self.window_ms
            self._evict_samples(self._cpu, cutoff)
            self._evict_samples(self._memory, cutoff)
        return cpu, memory_mb

    # Background sampling

    def start_system_monitoring(self) -> None:
        """Start the periodic system sampler.

        Safe to call multiple times; subsequent calls while running are ignored.
        """

        if self._sampler is not None and self._sampler.is_alive():
            return
        self._sampler_stop.clear()
        self._sampler = threading.Thread(target=self._sample_loop, daemon=True)
        self._sampler.start()

    def stop_system_monitoring(self) -> None:
        self._sampler_stop.set()
        if self._sampler is not None and self._sampler.is_alive():
            self._sampler.join(timeout=2)
        self._sampler = None

    def _sample_loop(self) -> None:
        logger.debug("System sampler started (every %.1fs)", self.system_sample_interval_s)
        while not self._sampler_stop.wait(self.system_sample_interval_s):
            try:
                self.sample_system()
            except Exception:
                logger.exception("System metrics sampling failed")

    # Reading

    def snapshot(self) -> MetricsSnapshot:
        """Compute statistics over everything still inside the window.

        Read-only: expired samples are filtered out, not evicted.
        """

        now = self._clock()
        cutoff = now - self.window_ms
        with self._lock:
            frames = [f for f in self._frames if f.timestamp > cutoff]
            uplink = [s.value for s in self._uplink if s.timestamp > cutoff]
            downlink = [s.value for s in self._downlink if s.timestamp > cutoff]
            cpu = [s.value for s in self._cpu if s.timestamp > cutoff]
            memory = [s.value for s in self._memory if s.timestamp > cutoff]
            total, processed, dropped = self.total_frames, self.processed_frames, self.dropped_frames
            duration = max(0.0, (now - self.last_reset_ms) / 1000.0)

        fps = processed / duration if duration > 0 else 0.0
        drop_rate = (dropped / total) * 100.0 if total > 0 else 0.0

        return MetricsSnapshot(
            timestamp=now,
            duration=duration,
            frames=FrameCounters(
                total=total,
                processed=processed,
                dropped=dropped,
                drop_rate=drop_rate,
                fps=fps,
            ),
            latency={
                "end_to_end": latency_stats([f.end_to_end_latency for f in frames]),
                "network": latency_stats([f.network_latency for f in frames]),
                "inference": latency_stats([f.inference_latency for f in frames]),
            },
            bandwidth={"uplink": series_stats(uplink), "downlink": series_stats(downlink)},
            system={"cpu": series_stats(cpu), "memory": series_stats(memory)},
            recent_frames=frames[-RECENT_FRAMES:],
            sample_count={"frames": len(frames), "bandwidth": len(uplink), "system": len(cpu)},
        )

    def export(self) -> dict[str, Any]:
        """Flat summary of the headline numbers plus the full snapshot."""

        snap = self.snapshot()
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "duration_seconds": snap.duration,
            "median_latency_ms": snap.latency["end_to_end"].median,
            "p95_latency_ms": snap.latency["end_to_end"].p95,
            "processed_fps": snap.frames.fps,
            "uplink_kbps": snap.bandwidth["uplink"].average,
            "downlink_kbps": snap.bandwidth["downlink"].average,
            "drop_rate_percent": snap.frames.drop_rate,
            "inference_latency_ms": snap.latency["inference"].median,
            "network_latency_ms": snap.latency["network"].median,
            "cpu_usage_percent": snap.system["cpu"].average,
            "memory_usage_mb": snap.system["memory"].average,
            "full_metrics": snap.to_dict(),
        }

    def reset(self) -> None:
        """Clear history and counters; the system sampler keeps running."""

        with self._lock:
            self._frames.clear()
            self._uplink.clear()
            self._downlink.clear()
            self._cpu.clear()
            self._memory.clear()
            self.total_frames = 0
            self.processed_frames = 0
            self.dropped_frames = 0
            self.last_reset_ms = self._clock()
        logger.info("Metrics reset")

    # Eviction (callers hold the lock)

    def _evict_frames(self, now: int) -> None:
        cutoff = now - self.window_ms
        while self._frames and self._frames[0].timestamp <= cutoff:
            self._frames.popleft()
        while len(self._frames) > self.max_frame_history:
            self._frames.popleft()

    @staticmethod
    def _evict_samples(series: deque[_Sample], cutoff: int) -> None:
        while series and series[0].timestamp <= cutoff:
            series.popleft()
