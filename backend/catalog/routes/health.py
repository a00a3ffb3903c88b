"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from catalog.context import AppContext, get_context
from catalog.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.get("")
async def health_check(context: AppContext = Depends(get_context)):
    """
    Store connectivity.

    200 while MongoDB answers, even with Redis or Elasticsearch disabled
    (the service runs degraded without them). 503 when MongoDB is down.
    """
    health = await context.health()
    status_code = 200 if health["status"] == "ok" else 503
    if status_code != 200:
        logger.warning("health_check_degraded", **health["stores"])
    return JSONResponse(status_code=status_code, content=health)
