"""
Product catalog endpoints.

GET /products?search=&category=&minPrice=&maxPrice=&featured=&brands=&page=&limit=&sort=
GET /products/{slug}
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends

from catalog.context import AppContext, get_context
from catalog.core.logging import bind_catalog_context
from catalog.models.search import SearchQuery
from catalog.routes.dependencies import listing_query_params

router = APIRouter()


@router.get("")
async def list_products(
    query: SearchQuery = Depends(listing_query_params),
    context: AppContext = Depends(get_context),
) -> Dict[str, Any]:
    """Filtered, paginated product listing (cached 5 minutes)."""
    return await context.catalog.list_products(query)


@router.get("/{slug}")
async def get_product(slug: str, context: AppContext = Depends(get_context)) -> Dict[str, Any]:
    """Single product by slug (cached 1 hour)."""
    bind_catalog_context(product_slug=slug)
    return await context.catalog.get_product(slug)
