"""
Search endpoints.

GET /search?q={term}&category=&minPrice=&maxPrice=&featured=&brands=&page=&limit=&sort=
GET /search/suggestions?q={term}&limit={int}&category=
"""
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from catalog.context import AppContext, get_context
from catalog.core.logging import bind_catalog_context, get_logger
from catalog.models.responses import success_envelope
from catalog.models.search import SearchQuery
from catalog.routes.dependencies import search_query_params
from catalog.services.cache.catalog_cache import (
    SEARCH_TTL,
    SUGGESTIONS_TTL,
    search_key,
    suggestions_key,
)
from catalog.services.search.suggestions import suggest

logger = get_logger(__name__)

router = APIRouter()


@router.get("")
async def search(
    query: SearchQuery = Depends(search_query_params),
    context: AppContext = Depends(get_context),
) -> Dict[str, Any]:
    """
    Search products.

    Uses Elasticsearch when it is connected and `q` is set, MongoDB otherwise
    or when the index fails. Whole responses are cached for 5 minutes.
    """
    bind_catalog_context(search_text=query.text, category=query.category)
    start_time = time.time()

    async def produce() -> Dict[str, Any]:
        result = await context.search_router.search(query)
        return success_envelope({
            "products": result.products,
            "pagination": result.pagination(),
            "query": query.text,
        })

    response = await context.cache.with_cache(
        search_key(query), produce, ttl=SEARCH_TTL, cache_type="search"
    )

    logger.info(
        "search_request_completed",
        query=query.text,
        category=query.category,
        page=query.page,
        limit=query.limit,
        sort=query.sort.value,
        latency_ms=int((time.time() - start_time) * 1000),
    )
    return response


@router.get("/suggestions")
async def search_suggestions(
    q: Optional[str] = Query(None, description="Partial search term"),
    limit: int = Query(5, ge=1, le=20),
    category: Optional[str] = Query(None),
    context: AppContext = Depends(get_context),
) -> Dict[str, Any]:
    """Autocomplete words and matching products; terms shorter than 2 chars return nothing."""
    term = (q or "").strip()
    params = {"q": term, "limit": limit, "category": category}

    async def produce() -> Dict[str, Any]:
        return success_envelope(await suggest(context.products, term, limit=limit, category=category))

    return await context.cache.with_cache(
        suggestions_key(params), produce, ttl=SUGGESTIONS_TTL, cache_type="suggestions"
    )
