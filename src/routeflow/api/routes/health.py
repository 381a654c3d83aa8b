"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings
from ...services.routing.optimization_client import check_health as optimizer_health_check

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/optimizer", status_code=status.HTTP_200_OK)
async def health_optimizer() -> dict:
    """Check that the optimization service answers."""
    if not settings.optimizer_base_url:
        return {"service": "optimizer", "configured": False, "healthy": False}
    try:
        healthy = await optimizer_health_check()
        return {"service": "optimizer", "configured": True, "healthy": healthy}
    except Exception as e:
        return {"service": "optimizer", "configured": True, "healthy": False, "error": str(e)}
