"""
Elasticsearch search index connection.

The index is an optional, eventually consistent projection of the products
collection. If the cluster cannot be reached at startup the service runs with
MongoDB text search only.
"""
from typing import Any, Dict, Optional

from elasticsearch import AsyncElasticsearch

from catalog.core.config import Settings
from catalog.core.logging import get_logger

logger = get_logger(__name__)

INDEX_SETTINGS: Dict[str, Any] = {
    "analysis": {
        "normalizer": {
            "lowercase_normalizer": {
                "type": "custom",
                "filter": ["lowercase"],
            },
        },
        "analyzer": {
            "product_analyzer": {
                "type": "standard",
                "stopwords": "_english_",
            },
        },
    },
}

# Fields of an IndexDocument, see catalog.services.search.indexing.to_index_document
INDEX_MAPPINGS: Dict[str, Any] = {
    "properties": {
        "name": {
            "type": "text",
            "analyzer": "standard",
            "fields": {"keyword": {"type": "keyword"}},
        },
        "description": {"type": "text", "analyzer": "standard"},
        "category": {"type": "keyword", "normalizer": "lowercase_normalizer"},
        "slug": {"type": "keyword"},
        "sku": {"type": "keyword"},
        "price": {"type": "float"},
        "originalPrice": {"type": "float"},
        "rating": {"type": "float"},
        "reviewCount": {"type": "integer"},
        "stock": {"type": "integer"},
        "featured": {"type": "boolean"},
        "createdAt": {"type": "date"},
        "updatedAt": {"type": "date"},
    },
}


async def ensure_index(client: AsyncElasticsearch, index_name: str) -> bool:
    """Create the products index with its mapping if it does not exist."""
    if await client.indices.exists(index=index_name):
        return False
    await client.indices.create(index=index_name, mappings=INDEX_MAPPINGS, settings=INDEX_SETTINGS)
    logger.info("elasticsearch_index_created", index=index_name)
    return True


async def connect_search_index(settings: Settings) -> Optional[AsyncElasticsearch]:
    """
    Connect to Elasticsearch and make sure the products index exists.

    Returns:
        The client, or None when search indexing is disabled or unreachable
    """
    if not settings.elasticsearch_enabled:
        logger.info("elasticsearch_disabled")
        return None

    basic_auth = None
    if settings.elasticsearch_username and settings.elasticsearch_password:
        basic_auth = (settings.elasticsearch_username, settings.elasticsearch_password)

    client = AsyncElasticsearch(
        settings.elasticsearch_node,
        basic_auth=basic_auth,
        request_timeout=settings.elasticsearch_timeout,
        max_retries=1,
        retry_on_timeout=False,
    )

    try:
        health = await client.cluster.health()
        logger.info(
            "elasticsearch_connected",
            node=settings.elasticsearch_node,
            cluster_name=health.get("cluster_name"),
            status=health.get("status"),
        )
        await ensure_index(client, settings.search_index_name)
        return client
    except Exception as e:
        logger.warning(
            "elasticsearch_unavailable_using_database_search",
            node=settings.elasticsearch_node,
            error=str(e),
            error_type=type(e).__name__,
        )
        await close_search_index(client, quiet=True)
        return None


async def close_search_index(client: Optional[AsyncElasticsearch], quiet: bool = False) -> None:
    if client is None:
        return
    try:
        await client.close()
        if not quiet:
            logger.info("elasticsearch_closed")
    except Exception as e:
        if not quiet:
            logger.error("elasticsearch_close_failed", error=str(e), exc_info=True)
