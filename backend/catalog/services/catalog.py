"""
Catalog reads and admin writes.

Reads go through the cache (listing pages 5 minutes, single products 1 hour)
and return full response envelopes, so a cache hit is served as is.

Writes hit MongoDB first. Index sync and cache invalidation follow as
best-effort steps: neither can fail a write that MongoDB accepted.
"""
from datetime import datetime, timezone
from typing import Any, Dict

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import DuplicateKeyError

from catalog.core.cache import CacheClient
from catalog.core.errors import DuplicateProductError, InvalidProductIdError, ProductNotFoundError
from catalog.core.logging import get_logger
from catalog.models.product import ProductCreate, ProductUpdate, serialize_product
from catalog.models.responses import success_envelope
from catalog.models.search import SearchQuery
from catalog.services.cache.catalog_cache import (
    PRODUCT_LIST_TTL,
    PRODUCT_TTL,
    invalidate_product_listings,
    invalidate_products,
    product_key,
    product_list_key,
)
from catalog.services.search.indexing import SearchIndexer
from catalog.services.search.router import SearchRouter

logger = get_logger(__name__)


def _object_id(product_id: str) -> ObjectId:
    if not ObjectId.is_valid(product_id):
        raise InvalidProductIdError(product_id)
    return ObjectId(product_id)


class CatalogService:
    def __init__(
        self,
        products: AsyncCollection,
        cache: CacheClient,
        router: SearchRouter,
        indexer: SearchIndexer,
    ):
        self.products = products
        self.cache = cache
        self.router = router
        self.indexer = indexer

    async def list_products(self, query: SearchQuery) -> Dict[str, Any]:
        """Filtered, sorted, paginated listing straight from MongoDB."""

        async def produce() -> Dict[str, Any]:
            result = await self.router.search_database_backend(query)
            return success_envelope({
                "products": result.products,
                "pagination": result.pagination(),
            })

        return await self.cache.with_cache(
            product_list_key(query), produce, ttl=PRODUCT_LIST_TTL, cache_type="products"
        )

    async def get_product(self, slug: str) -> Dict[str, Any]:
        """
        Raises:
            ProductNotFoundError: no product has this slug (not cached)
        """

        async def produce() -> Dict[str, Any]:
            document = await self.products.find_one({"slug": slug})
            if document is None:
                raise ProductNotFoundError(slug)
            return success_envelope({"product": serialize_product(document)})

        return await self.cache.with_cache(
            product_key(slug), produce, ttl=PRODUCT_TTL, cache_type="product"
        )

    async def create_product(self, payload: ProductCreate) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        document = payload.to_document()
        document["createdAt"] = now
        document["updatedAt"] = now

        try:
            result = await self.products.insert_one(document)
        except DuplicateKeyError as e:
            raise DuplicateProductError("A product with this slug or SKU already exists") from e
        document["_id"] = result.inserted_id

        logger.info("product_created", product_id=str(result.inserted_id), slug=document["slug"])
        await self._after_write(document, stale_slugs=[document["slug"]])
        return serialize_product(document)

    async def update_product(self, product_id: str, payload: ProductUpdate) -> Dict[str, Any]:
        oid = _object_id(product_id)
        changes = payload.to_document()
        changes["updatedAt"] = datetime.now(timezone.utc)

        previous = await self.products.find_one({"_id": oid}, {"slug": 1})
        if previous is None:
            raise ProductNotFoundError(product_id)

        try:
            document = await self.products.find_one_and_update(
                {"_id": oid},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise DuplicateProductError("A product with this slug or SKU already exists") from e
        if document is None:
            raise ProductNotFoundError(product_id)

        logger.info("product_updated", product_id=product_id, fields=sorted(changes))
        await self._after_write(document, stale_slugs=[previous.get("slug"), document.get("slug")])
        return serialize_product(document)

    async def delete_product(self, product_id: str) -> Dict[str, Any]:
        oid = _object_id(product_id)
        document = await self.products.find_one_and_delete({"_id": oid})
        if document is None:
            raise ProductNotFoundError(product_id)

        logger.info("product_deleted", product_id=product_id, slug=document.get("slug"))
        await self.indexer.remove_one(product_id)
        await self._invalidate([document.get("slug")])
        return serialize_product(document)

    async def _after_write(self, document: Dict[str, Any], stale_slugs) -> None:
        await self.indexer.index_one(document)
        await self._invalidate(stale_slugs)

    async def _invalidate(self, slugs) -> None:
        await invalidate_product_listings(self.cache)
        await invalidate_products(self.cache, slugs)
