"""Metrics endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from camrelay.api.schemas.models import BandwidthSample
from camrelay.api.services.state import get_metrics
from camrelay.core.metrics.collector import MetricsCollector

router = APIRouter(prefix="/api/metrics")


@router.get("")
def metrics(collector: MetricsCollector = Depends(get_metrics)) -> dict[str, Any]:
    """Return a point-in-time metrics snapshot."""

    return collector.snapshot().to_dict()


@router.post("/reset")
def reset(collector: MetricsCollector = Depends(get_metrics)) -> dict[str, str]:
    collector.reset()
    return {"status": "reset"}


@router.get("/export")
def export(collector: MetricsCollector = Depends(get_metrics)) -> dict[str, Any]:
    """Headline numbers in a flat, benchmark-friendly shape."""

    return collector.export()


@router.post("/bandwidth")
def bandwidth(
    sample: BandwidthSample, collector: MetricsCollector = Depends(get_metrics)
) -> dict[str, str]:
    collector.record_bandwidth(sample.uplink, sample.downlink)
    return {"status": "ok"}
