"""Health check endpoints."""

from fastapi import APIRouter

from camrelay.api.services.state import get_pipeline, uptime

router = APIRouter()


@router.get("/health")
def health() -> dict[str, object]:
    """Lightweight health endpoint used by containers and dev tooling."""

    return {"status": "ok", "mode": get_pipeline().mode, "uptime": uptime()}
