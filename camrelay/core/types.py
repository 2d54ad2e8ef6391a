"""Shared type definitions used across the relay.

Small, stable value types (peers, rooms, detections, frame records) live here so
the signaling, pipeline and metrics code can stay strongly typed without
importing each other.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

FrameId = str | int


def now_ms() -> int:
    """Current wall clock time as integer milliseconds since the epoch."""

    return int(time.time() * 1000)


class PeerRole(str, Enum):
    CAMERA = "camera"
    VIEWER = "viewer"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: object) -> PeerRole:
        """Map a client supplied role string to a role, defaulting to UNKNOWN."""

        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


class PeerConnection(Protocol):
    """Outbound half of a peer transport (a WebSocket in production)."""

    async def send_json(self, data: Any) -> None: ...


@dataclass
class Peer:
    """One connected participant."""

    peer_id: str
    connection: PeerConnection | None = None
    role: PeerRole = PeerRole.UNKNOWN
    room_id: str | None = None

    def describe(self) -> dict[str, str]:
        return {"peerId": self.peer_id, "role": self.role.value}


@dataclass
class Room:
    """Named group of peers. Never retained once empty."""

    room_id: str
    members: set[str] = field(default_factory=set)
    created_at: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class Detection:
    """Detector output with a bounding box normalized to [0, 1]."""

    label: str
    score: float
    xmin: float
    ymin: float
    xmax: float
    ymax: float


@dataclass
class PendingFrame:
    """A frame waiting in (or travelling through) the admission queue."""

    frame_id: FrameId
    capture_ts: int
    payload: Any = None
    enqueued_ts: int = field(default_factory=now_ms)
    recv_ts: int | None = None
    inference_ts: int | None = None


@dataclass(frozen=True)
class DetectionResult:
    """Completed frame, in the shape collaborators expect on the wire."""

    frame_id: FrameId
    capture_ts: int
    recv_ts: int
    inference_ts: int
    detections: list[Detection]

    def to_payload(self) -> dict[str, Any]:
        return {
            "frame_id": self.frame_id,
            "capture_ts": self.capture_ts,
            "recv_ts": self.recv_ts,
            "inference_ts": self.inference_ts,
            "detections": [
                {
                    "label": d.label,
                    "score": d.score,
                    "xmin": d.xmin,
                    "ymin": d.ymin,
                    "xmax": d.xmax,
                    "ymax": d.ymax,
                }
                for d in self.detections
            ],
        }


@dataclass(frozen=True)
class FrameRecord:
    """Immutable entry of the metrics frame history."""

    frame_id: FrameId
    capture_ts: int
    recv_ts: int
    inference_ts: int
    overlay_ts: int
    network_latency: float
    inference_latency: float
    end_to_end_latency: float
    detection_count: int
    timestamp: int
