"""
Application context: every external client and service, created once.

The context is built at startup, stored on `app.state.context` and handed to
route handlers through the `get_context` dependency. Tests build one from
fakes and assign it directly.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from elasticsearch import AsyncElasticsearch
from fastapi import Request
from pymongo import AsyncMongoClient
from pymongo.asynchronous.collection import AsyncCollection
from redis.asyncio import Redis

from catalog.core.cache import CacheClient, close_redis, connect_redis
from catalog.core.circuit_breaker import CircuitBreaker
from catalog.core.config import Settings
from catalog.core.database import (
    close_database,
    connect_database,
    ensure_product_indexes,
    get_database,
    get_products_collection,
)
from catalog.core.logging import get_logger
from catalog.core.metrics import set_store_available
from catalog.core.search_index import close_search_index, connect_search_index
from catalog.services.catalog import CatalogService
from catalog.services.search.indexing import SearchIndexer
from catalog.services.search.router import SearchRouter

logger = get_logger(__name__)


@dataclass
class AppContext:
    settings: Settings
    products: AsyncCollection
    cache: CacheClient
    search_router: SearchRouter
    indexer: SearchIndexer
    catalog: CatalogService
    mongo: Optional[AsyncMongoClient] = None
    redis: Optional[Redis] = None
    search_index: Optional[AsyncElasticsearch] = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        products: AsyncCollection,
        redis: Optional[Redis] = None,
        search_index: Optional[AsyncElasticsearch] = None,
        mongo: Optional[AsyncMongoClient] = None,
    ) -> "AppContext":
        """Wire services around already-connected clients."""
        cache = CacheClient(
            redis,
            circuit_breaker=CircuitBreaker("redis_cache") if redis is not None else None,
            single_flight=settings.cache_single_flight,
        )
        search_router = SearchRouter(
            products,
            search_index=search_index,
            index_name=settings.search_index_name,
            circuit_breaker=CircuitBreaker("elasticsearch") if search_index is not None else None,
        )
        indexer = SearchIndexer(
            products,
            search_index,
            index_name=settings.search_index_name,
            batch_size=settings.reindex_batch_size,
        )
        catalog = CatalogService(products, cache, search_router, indexer)

        set_store_available("redis", redis is not None)
        set_store_available("elasticsearch", search_index is not None)

        return cls(
            settings=settings,
            products=products,
            cache=cache,
            search_router=search_router,
            indexer=indexer,
            catalog=catalog,
            mongo=mongo,
            redis=redis,
            search_index=search_index,
        )

    @classmethod
    async def create(cls, settings: Settings) -> "AppContext":
        """
        Connect every store and build the context.

        MongoDB is required and its failure propagates. Redis and
        Elasticsearch degrade to None (cache bypass, database search).
        """
        mongo = await connect_database(settings)
        products = get_products_collection(get_database(mongo, settings))
        await ensure_product_indexes(products)
        set_store_available("mongodb", True)

        redis = await connect_redis(settings)
        search_index = await connect_search_index(settings)

        context = cls.build(settings, products, redis=redis, search_index=search_index, mongo=mongo)
        logger.info(
            "app_context_ready",
            cache_enabled=context.cache.is_connected,
            search_index_enabled=context.search_router.index_connected,
            single_flight=settings.cache_single_flight,
        )
        return context

    async def close(self) -> None:
        await close_search_index(self.search_index)
        await close_redis(self.redis)
        if self.mongo is not None:
            await close_database(self.mongo)
            set_store_available("mongodb", False)

    async def health(self) -> Dict[str, Any]:
        """Connectivity of each store; only MongoDB decides overall health."""
        mongodb = "ok"
        try:
            await self.products.database.command("ping")
        except Exception as e:
            logger.warning("health_mongodb_ping_failed", error=str(e), error_type=type(e).__name__)
            mongodb = "unavailable"

        cache_breaker = self.cache.get_circuit_breaker_metrics()
        return {
            "status": "ok" if mongodb == "ok" else "degraded",
            "stores": {
                "mongodb": mongodb,
                "redis": "ok" if self.cache.is_connected else "disabled",
                "elasticsearch": "ok" if self.search_router.index_connected else "disabled",
            },
            "cache_circuit_breaker": cache_breaker["state"] if cache_breaker else None,
        }


def get_context(request: Request) -> AppContext:
    """FastAPI dependency returning the application context."""
    return request.app.state.context
