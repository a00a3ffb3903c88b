"""
Admin endpoints for catalog maintenance.

POST   /admin/products
PUT    /admin/products/{product_id}
DELETE /admin/products/{product_id}
POST   /admin/search/reindex
DELETE /admin/cache?pattern={glob}

Security: should sit behind admin authentication in production.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from catalog.context import AppContext, get_context
from catalog.core.logging import bind_catalog_context, get_logger
from catalog.models.product import ProductCreate, ProductUpdate
from catalog.models.responses import success_envelope

logger = get_logger(__name__)

router = APIRouter()


@router.post("/products", status_code=201)
async def create_product(
    payload: ProductCreate,
    context: AppContext = Depends(get_context),
) -> Dict[str, Any]:
    product = await context.catalog.create_product(payload)
    return success_envelope({"product": product}, status=201)


@router.put("/products/{product_id}")
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    context: AppContext = Depends(get_context),
) -> Dict[str, Any]:
    bind_catalog_context(product_id=product_id)
    product = await context.catalog.update_product(product_id, payload)
    return success_envelope({"product": product})


@router.delete("/products/{product_id}")
async def delete_product(product_id: str, context: AppContext = Depends(get_context)) -> Dict[str, Any]:
    bind_catalog_context(product_id=product_id)
    product = await context.catalog.delete_product(product_id)
    return success_envelope({"product": product})


@router.post("/search/reindex")
async def reindex(context: AppContext = Depends(get_context)) -> Dict[str, Any]:
    """
    Rebuild the search index from MongoDB.

    Returns indexed/failed counts; both are 0 when the index is not connected.
    """
    result = await context.indexer.reindex_all()
    return success_envelope({
        **result,
        "index_available": context.indexer.is_available,
    })


@router.delete("/cache")
async def invalidate_cache(
    pattern: Optional[str] = Query(None, description="Glob pattern, e.g. products:*; omit to flush everything"),
    context: AppContext = Depends(get_context),
) -> Dict[str, Any]:
    if pattern:
        deleted = await context.cache.delete_pattern(pattern)
        logger.info("admin_cache_invalidated", pattern=pattern, deleted=deleted)
        return success_envelope({"pattern": pattern, "deleted": deleted})

    cleared = await context.cache.clear()
    logger.warning("admin_cache_cleared", cleared=cleared)
    return success_envelope({"pattern": None, "cleared": cleared})
