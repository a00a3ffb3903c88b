"""
Prometheus metrics endpoint.

GET /metrics

Store availability gauges are refreshed from the application context on each
scrape, so a cache or index that was bypassed at startup reads 0.
"""
from fastapi import APIRouter, Depends, Response
from fastapi.responses import PlainTextResponse

from catalog.context import AppContext, get_context
from catalog.core.logging import get_logger
from catalog.core.metrics import get_metrics, get_metrics_content_type, set_store_available

logger = get_logger(__name__)
router = APIRouter()


def refresh_store_gauges(context: AppContext) -> None:
    set_store_available("redis", context.cache.is_connected)
    set_store_available("elasticsearch", context.search_router.index_connected)


@router.get("", response_class=PlainTextResponse)
async def metrics(context: AppContext = Depends(get_context)):
    """Prometheus text format; no authentication, as usual for scrape targets."""
    try:
        refresh_store_gauges(context)
        return Response(content=get_metrics(), media_type=get_metrics_content_type())
    except Exception as e:
        logger.error(
            "metrics_collection_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return Response(
            content=b"# Error collecting catalog metrics\n",
            media_type=get_metrics_content_type(),
        )
