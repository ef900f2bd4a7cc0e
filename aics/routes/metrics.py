"""
Prometheus scrape endpoint.

GET /metrics
"""
from fastapi import APIRouter, Response

from aics.core.config import get_settings
from aics.core.logging import get_logger
from aics.core.metrics import get_metrics, get_metrics_content_type, set_ai_pipeline_available

logger = get_logger(__name__)
router = APIRouter()


@router.get("")
async def metrics() -> Response:
    """
    Metrics in Prometheus text format.

    Pipeline availability is refreshed on every scrape so that a missing
    LLM key shows up on dashboards, not only as 503s on /chat.
    """
    set_ai_pipeline_available(get_settings().llm_configured)
    try:
        body = get_metrics()
    except Exception as e:
        logger.error(
            "metrics_endpoint_error",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        body = b"# Error collecting metrics\n"
    return Response(content=body, media_type=get_metrics_content_type())
