"""
Search routing between Elasticsearch and MongoDB.

1. Elasticsearch, only when the index is connected and the query has a text
   term. Hits give an ordered list of ids; canonical products are re-fetched
   from MongoDB and put back in hit order.
2. MongoDB otherwise, or when step 1 raised for any reason.

Index failures are logged and counted, never surfaced. A MongoDB failure is
the one error that reaches the caller: the source of truth is down.
"""
import asyncio
import time
from typing import Any, Dict, List, Optional

from bson import ObjectId
from elasticsearch import AsyncElasticsearch
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import PyMongoError

from catalog.core.circuit_breaker import CircuitBreaker
from catalog.core.errors import SearchBackendError
from catalog.core.logging import bind_catalog_context, get_logger
from catalog.core.metrics import record_search, record_search_fallback
from catalog.core.tracing import (
    StatusCode,
    get_tracer,
    record_exception,
    set_span_attribute,
    set_span_status,
)
from catalog.models.product import serialize_product
from catalog.models.search import SearchQuery, SearchResult
from catalog.services.search.queries import (
    build_database_filter,
    build_database_sort,
    build_index_query,
    build_index_sort,
)

logger = get_logger(__name__)

BACKEND_INDEX = "elasticsearch"
BACKEND_DATABASE = "mongodb"


def _query_context(query: SearchQuery) -> Dict[str, Any]:
    return {
        "query": query.text,
        "category": query.category,
        "price_min": query.price_min,
        "price_max": query.price_max,
        "featured": query.featured,
        "brands": query.brands,
        "page": query.page,
        "limit": query.limit,
        "sort": query.sort.value,
    }


def _body(response: Any) -> Dict[str, Any]:
    # elasticsearch-py wraps bodies in ObjectApiResponse
    return getattr(response, "body", response)


def _hit_total(hits: Dict[str, Any]) -> int:
    total = hits.get("total", 0)
    if isinstance(total, dict):
        return int(total.get("value", 0))
    return int(total or 0)


def _as_object_id(product_id: str) -> Any:
    return ObjectId(product_id) if ObjectId.is_valid(product_id) else product_id


class SearchRouter:
    """Routes a SearchQuery to the best available backend."""

    def __init__(
        self,
        products: AsyncCollection,
        search_index: Optional[AsyncElasticsearch] = None,
        index_name: str = "products",
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.products = products
        self.search_index = search_index
        self.index_name = index_name
        self.circuit_breaker = circuit_breaker

    @property
    def index_connected(self) -> bool:
        return self.search_index is not None

    async def search(self, query: SearchQuery) -> SearchResult:
        if self.index_connected and query.text:
            try:
                return await self.search_index_backend(query)
            except Exception as e:
                record_search_fallback(BACKEND_INDEX)
                logger.warning(
                    "search_index_failed_falling_back",
                    backend=BACKEND_INDEX,
                    fallback=BACKEND_DATABASE,
                    error=str(e),
                    error_type=type(e).__name__,
                    **_query_context(query),
                )

        return await self.search_database_backend(query)

    async def search_index_backend(self, query: SearchQuery) -> SearchResult:
        """Elasticsearch match, then ordered canonical re-fetch from MongoDB."""
        bind_catalog_context(search_backend=BACKEND_INDEX)
        tracer = get_tracer()
        with tracer.start_as_current_span("search.index"):
            set_span_attribute("search.backend", BACKEND_INDEX)
            set_span_attribute("search.query", query.text or "")
            start = time.perf_counter()

            request: Dict[str, Any] = {
                "index": self.index_name,
                "query": build_index_query(query),
                "from_": query.skip,
                "size": query.limit,
                "track_total_hits": True,
            }
            sort = build_index_sort(query.sort)
            if sort:
                request["sort"] = sort

            if self.circuit_breaker:
                response = await self.circuit_breaker.call_async(self.search_index.search, **request)
            else:
                response = await self.search_index.search(**request)

            hits = _body(response)["hits"]
            total = _hit_total(hits)
            product_ids = [hit["_id"] for hit in hits.get("hits", [])]

            # The id list must be complete before the re-fetch
            products = await self.fetch_in_order(product_ids)

            duration = time.perf_counter() - start
            record_search(BACKEND_INDEX, duration, total)
            set_span_attribute("search.results_count", len(products))
            set_span_status(StatusCode.OK)

            logger.info(
                "search_completed",
                backend=BACKEND_INDEX,
                query=query.text,
                total=total,
                returned=len(products),
                missing=len(product_ids) - len(products),
                latency_ms=int(duration * 1000),
            )
            return SearchResult.build(products, total, query.page, query.limit, BACKEND_INDEX)

    async def fetch_in_order(self, product_ids: List[str]) -> List[Dict[str, Any]]:
        """
        Canonical products for `product_ids`, in the order given.

        `$in` returns documents in storage order, so results are re-keyed and
        reordered. Ids with no document (deleted since indexing) are dropped.
        """
        if not product_ids:
            return []

        cursor = self.products.find({"_id": {"$in": [_as_object_id(pid) for pid in product_ids]}})
        documents = await cursor.to_list(length=None)
        by_id = {str(document["_id"]): document for document in documents}
        return [serialize_product(by_id[pid]) for pid in product_ids if pid in by_id]

    async def search_database_backend(self, query: SearchQuery) -> SearchResult:
        """MongoDB filter/sort/skip/limit with a parallel count."""
        bind_catalog_context(search_backend=BACKEND_DATABASE)
        tracer = get_tracer()
        with tracer.start_as_current_span("search.database"):
            set_span_attribute("search.backend", BACKEND_DATABASE)
            start = time.perf_counter()

            mongo_filter = build_database_filter(query)
            cursor = (
                self.products.find(mongo_filter)
                .sort(build_database_sort(query.sort))
                .skip(query.skip)
                .limit(query.limit)
            )

            try:
                documents, total = await asyncio.gather(
                    cursor.to_list(length=query.limit),
                    self.products.count_documents(mongo_filter),
                )
            except PyMongoError as e:
                record_exception(e)
                logger.error(
                    "search_database_failed",
                    backend=BACKEND_DATABASE,
                    error=str(e),
                    error_type=type(e).__name__,
                    **_query_context(query),
                )
                raise SearchBackendError("Product search is unavailable") from e

            products = [serialize_product(document) for document in documents]
            duration = time.perf_counter() - start
            record_search(BACKEND_DATABASE, duration, total)
            set_span_attribute("search.results_count", len(products))
            set_span_status(StatusCode.OK)

            logger.info(
                "search_completed",
                backend=BACKEND_DATABASE,
                query=query.text,
                total=total,
                returned=len(products),
                latency_ms=int(duration * 1000),
            )
            return SearchResult.build(products, total, query.page, query.limit, BACKEND_DATABASE)
