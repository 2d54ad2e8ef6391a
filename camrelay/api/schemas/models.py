"""Pydantic models for the HTTP API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class DetectRequest(BaseModel):
    """Frame submitted for detection (browser field names)."""

    frameId: str | int
    captureTs: int
    imageData: Any = None


class DetectionSchema(BaseModel):
    """One detection with a normalized bounding box."""

    label: str
    score: float
    xmin: float
    ymin: float
    xmax: float
    ymax: float


class DetectionResultSchema(BaseModel):
    """Detection result for one frame.

    `dropped` frames were shed by the admission queue and carry no timestamps
    beyond `capture_ts`.
    """

    frame_id: str | int
    capture_ts: int
    recv_ts: int | None = None
    inference_ts: int | None = None
    detections: list[DetectionSchema] = Field(default_factory=list)
    dropped: bool = False


class BandwidthSample(BaseModel):
    """Client-measured bandwidth in kbps."""

    uplink: float = Field(ge=0.0)
    downlink: float = Field(ge=0.0)


class ConfigSchema(BaseModel):
    """Effective runtime configuration and feature flags."""

    mode: str
    max_queue_size: int
    drop_policy: str
    target_fps: float
    metrics_window_ms: int
    max_frame_history: int
    require_same_room: bool
    features: dict[str, bool]
    pipeline: dict[str, Any]
