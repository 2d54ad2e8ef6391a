"""Configuration endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from camrelay.api.schemas.models import ConfigSchema
from camrelay.api.services.state import get_pipeline, get_settings

router = APIRouter()


@router.get("/api/config", response_model=ConfigSchema)
def get_config() -> ConfigSchema:
    """Return the effective configuration and pipeline status."""

    settings = get_settings()
    pipeline = get_pipeline()
    return ConfigSchema(
        mode=pipeline.mode,
        max_queue_size=settings.max_queue_size,
        drop_policy=settings.drop_policy,
        target_fps=settings.target_fps,
        metrics_window_ms=settings.metrics_window_ms,
        max_frame_history=settings.max_frame_history,
        require_same_room=settings.require_same_room,
        features={
            "serverDetection": pipeline.mode == "server",
            "wasmDetection": pipeline.mode == "wasm",
            "webrtc": True,
            "metrics": True,
        },
        pipeline=pipeline.status(),
    )
