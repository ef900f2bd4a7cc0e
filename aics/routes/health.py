"""
Health check endpoint.
"""
from fastapi import APIRouter

from aics.core.config import get_settings
from aics.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.get("/")
async def health_check():
    """
    Basic health check endpoint.

    Also reports whether the AI pipeline is enabled and has gateway
    credentials, so operators can tell why /chat returns 503.
    """
    settings = get_settings()
    return {
        "status": "ok",
        "message": "API is running",
        "ai_enabled": settings.ai_enabled,
        "llm_configured": settings.llm_configured,
    }
