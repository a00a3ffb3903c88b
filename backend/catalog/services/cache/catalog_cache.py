"""
Cache keys, TTLs and invalidation for catalog reads.

Key formats:
- `products:{params}`     product listing pages, 5 minutes
- `product:{slug}`        single product, 1 hour
- `search:{params}`       search result pages, 5 minutes
- `suggestions:{params}`  autocomplete, 5 minutes

Nothing invalidates these automatically. Catalog writes call
invalidate_product_listings() and invalidate_products(); everything else
relies on TTL expiry.
"""
from typing import Any, Dict, Iterable

from catalog.core.cache import ENTITY_TTL, LIST_TTL, CacheClient, build_key
from catalog.core.logging import get_logger
from catalog.models.search import SearchQuery

logger = get_logger(__name__)

PRODUCT_LIST_TTL = LIST_TTL
PRODUCT_TTL = ENTITY_TTL
SEARCH_TTL = LIST_TTL
SUGGESTIONS_TTL = LIST_TTL

LISTING_PATTERNS = ("products:*", "search:*", "suggestions:*")


def product_list_key(query: SearchQuery) -> str:
    return build_key("products", query.cache_params())


def product_key(slug: str) -> str:
    return f"product:{slug}"


def search_key(query: SearchQuery) -> str:
    return build_key("search", query.cache_params())


def suggestions_key(params: Dict[str, Any]) -> str:
    return build_key("suggestions", params)


async def invalidate_product_listings(cache: CacheClient) -> int:
    """Drop every cached listing, search and suggestion page."""
    count = 0
    for pattern in LISTING_PATTERNS:
        count += await cache.delete_pattern(pattern)
    logger.info("cache_invalidated", cache_type="listings", count=count)
    return count


async def invalidate_products(cache: CacheClient, slugs: Iterable[str]) -> int:
    """Drop cached single-product entries; returns how many deletes succeeded."""
    deleted = 0
    for slug in {slug for slug in slugs if slug}:
        if await cache.delete(product_key(slug)):
            deleted += 1
    return deleted
