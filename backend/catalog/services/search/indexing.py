"""
Keeps the Elasticsearch index eventually consistent with MongoDB.

Per sync call: attempted -> skipped (index down) | succeeded | failed.
Failures are logged and swallowed; there is no retry queue. A lost update
is repaired by the next write to the same product or by reindex_all().
"""
from typing import Any, Dict, List, Optional, Tuple

from elasticsearch import AsyncElasticsearch, NotFoundError
from pymongo import ASCENDING
from pymongo.asynchronous.collection import AsyncCollection

from catalog.core.logging import get_logger
from catalog.core.metrics import record_index_sync, record_reindex
from catalog.core.tracing import get_tracer, set_span_attribute

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 100

INDEX_FIELDS = (
    "name",
    "description",
    "category",
    "slug",
    "sku",
    "price",
    "originalPrice",
    "rating",
    "reviewCount",
    "stock",
    "featured",
    "createdAt",
    "updatedAt",
)


def to_index_document(product: Dict[str, Any]) -> Dict[str, Any]:
    """Project a product onto the indexed fields."""
    document = {field: product.get(field) for field in INDEX_FIELDS}
    document["featured"] = bool(product.get("featured") or False)
    return document


def _body(response: Any) -> Dict[str, Any]:
    return getattr(response, "body", response)


class SearchIndexer:
    """Single-document sync and full rebuild of the products index."""

    def __init__(
        self,
        products: AsyncCollection,
        search_index: Optional[AsyncElasticsearch],
        index_name: str = "products",
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.products = products
        self.search_index = search_index
        self.index_name = index_name
        self.batch_size = batch_size

    @property
    def is_available(self) -> bool:
        return self.search_index is not None

    async def index_one(self, product: Dict[str, Any]) -> bool:
        """Upsert one product. False when skipped or failed."""
        if self.search_index is None:
            record_index_sync("index", "skipped")
            return False

        product_id = str(product["_id"])
        try:
            await self.search_index.index(
                index=self.index_name,
                id=product_id,
                document=to_index_document(product),
            )
        except Exception as e:
            record_index_sync("index", "failed")
            logger.error(
                "search_index_product_failed",
                product_id=product_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        record_index_sync("index", "succeeded")
        logger.debug("search_index_product_indexed", product_id=product_id, slug=product.get("slug"))
        return True

    async def remove_one(self, product_id: str) -> bool:
        """Delete one product from the index; already-absent counts as success."""
        if self.search_index is None:
            record_index_sync("remove", "skipped")
            return False

        try:
            await self.search_index.delete(index=self.index_name, id=product_id)
        except NotFoundError:
            record_index_sync("remove", "succeeded")
            return True
        except Exception as e:
            record_index_sync("remove", "failed")
            logger.error(
                "search_index_remove_failed",
                product_id=product_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        record_index_sync("remove", "succeeded")
        logger.debug("search_index_product_removed", product_id=product_id)
        return True

    async def reindex_all(self) -> Dict[str, int]:
        """
        Rebuild the index from MongoDB in batches of `batch_size`.

        A failing batch is counted as failed and the run continues. Errors
        reading MongoDB propagate.

        Returns:
            {"indexed": n, "failed": m}
        """
        if self.search_index is None:
            logger.warning("reindex_skipped_index_unavailable", index=self.index_name)
            return {"indexed": 0, "failed": 0}

        tracer = get_tracer()
        with tracer.start_as_current_span("search.reindex"):
            logger.info("reindex_started", index=self.index_name, batch_size=self.batch_size)
            indexed = 0
            failed = 0
            batch_start = 0
            batch: List[Dict[str, Any]] = []

            cursor = self.products.find({}, batch_size=self.batch_size).sort("_id", ASCENDING)
            async for product in cursor:
                batch.append(product)
                if len(batch) >= self.batch_size:
                    ok, bad = await self._index_batch(batch, batch_start)
                    indexed += ok
                    failed += bad
                    batch_start += len(batch)
                    batch = []

            if batch:
                ok, bad = await self._index_batch(batch, batch_start)
                indexed += ok
                failed += bad
                batch_start += len(batch)

            record_reindex(indexed, failed)
            set_span_attribute("reindex.indexed", indexed)
            set_span_attribute("reindex.failed", failed)
            logger.info(
                "reindex_completed",
                index=self.index_name,
                indexed=indexed,
                failed=failed,
                total=batch_start,
            )
            return {"indexed": indexed, "failed": failed}

    async def _index_batch(self, batch: List[Dict[str, Any]], batch_start: int) -> Tuple[int, int]:
        """Bulk-upsert one batch; returns (indexed, failed)."""
        operations: List[Dict[str, Any]] = []
        for product in batch:
            operations.append({"index": {"_index": self.index_name, "_id": str(product["_id"])}})
            operations.append(to_index_document(product))

        try:
            response = _body(await self.search_index.bulk(operations=operations))
        except Exception as e:
            logger.error(
                "reindex_batch_failed",
                batch_start=batch_start,
                batch_size=len(batch),
                error=str(e),
                error_type=type(e).__name__,
            )
            return 0, len(batch)

        if not response.get("errors"):
            return len(batch), 0

        failed = sum(1 for item in response.get("items", []) if item.get("index", {}).get("error"))
        logger.warning(
            "reindex_batch_partial_failure",
            batch_start=batch_start,
            batch_size=len(batch),
            failed=failed,
        )
        return len(batch) - failed, failed
