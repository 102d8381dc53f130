"""
Health check endpoints.
"""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends

from src.api.deps import get_preview_service
from src.core.config import settings
from src.core.logging import get_logger
from src.services.preview_service import PreviewService

logger = get_logger(__name__)

router = APIRouter()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Basic health check endpoint.
    Returns application status.
    """
    return {
        "status": "healthy",
        "app": settings.app_name,
        "environment": settings.app_env,
        "timestamp": _now_iso(),
    }


@router.get("/health/ready")
async def readiness_check(
    preview_service: PreviewService = Depends(get_preview_service),
) -> dict[str, Any]:
    """
    Readiness check endpoint.
    Verifies the preview store is reachable and reports LLM availability.
    """
    stats = await preview_service.get_stats()
    checks = {
        "app": True,
        "preview_store": True,
        "llm_configured": bool(settings.llm.api_key) and not settings.llm.force_mock,
    }

    return {
        "status": "ready",
        "checks": checks,
        "previews": stats,
        "timestamp": _now_iso(),
    }


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness check endpoint.
    Simple check that the application is running.
    """
    return {"status": "alive"}
