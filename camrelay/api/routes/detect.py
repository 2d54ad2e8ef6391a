"""Frame detection endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from camrelay.api.schemas.models import DetectionResultSchema, DetectRequest
from camrelay.api.services.state import get_pipeline
from camrelay.core.pipeline.dispatch import DetectionPipeline

router = APIRouter()


@router.post("/api/detect", response_model=DetectionResultSchema)
async def detect(
    req: DetectRequest, pipeline: DetectionPipeline = Depends(get_pipeline)
) -> DetectionResultSchema:
    """Queue a frame for detection and wait for its result.

    Frames shed under load come back with `dropped=True` instead of an error.
    """

    result = await pipeline.detect(req.frameId, req.captureTs, req.imageData)
    if result is None:
        return DetectionResultSchema(frame_id=req.frameId, capture_ts=req.captureTs, dropped=True)
    return DetectionResultSchema(**result.to_payload())
