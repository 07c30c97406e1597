"""Monitoring endpoints."""
from fastapi import APIRouter
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from starlette.responses import Response

from booking_service.config import settings

router = APIRouter(tags=["monitoring"])


@router.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "healthy", "storage": settings.storage_backend}


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    if not settings.enable_metrics:
        return Response(status_code=404)
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST,
    )
