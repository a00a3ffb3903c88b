"""
Tests for catalog reads (cached) and admin writes (index sync + invalidation).
"""
from unittest.mock import AsyncMock

import pytest
from bson import ObjectId
from elasticsearch import ConnectionError as ESConnectionError

from catalog.core.cache import CacheClient
from catalog.core.errors import DuplicateProductError, InvalidProductIdError, ProductNotFoundError
from catalog.models.product import ProductCreate, ProductUpdate
from catalog.models.search import SearchQuery
from catalog.services.catalog import CatalogService
from catalog.services.search.indexing import SearchIndexer
from catalog.services.search.router import SearchRouter

from conftest import make_search_index


@pytest.fixture
def search_index():
    return make_search_index()


@pytest.fixture
def service(catalog_products, cache, search_index):
    router = SearchRouter(catalog_products)
    indexer = SearchIndexer(catalog_products, search_index)
    return CatalogService(catalog_products, cache, router, indexer)


def new_product(**overrides):
    payload = {
        "name": "Google Pixel 8",
        "description": "Android phone with a great camera",
        "price": 699,
        "category": "electronics",
        "image": "/images/pixel.jpg",
        "sku": "gp-8",
    }
    payload.update(overrides)
    return ProductCreate(**payload)


def seed_listing_keys(fake_redis):
    for key in ('products:{"page":1}', 'search:{"text":"phone"}', 'suggestions:{"q":"ph"}', "product:apple-watch", "other:key"):
        fake_redis.store[key] = '"cached"'


def product_id(catalog_products, name):
    return next(str(doc["_id"]) for doc in catalog_products.documents if doc["name"] == name)


class TestReads:
    @pytest.mark.asyncio
    async def test_list_products_envelope(self, service):
        response = await service.list_products(SearchQuery(limit=2))

        assert response["success"] is True
        assert response["status"] == 200
        assert len(response["data"]["products"]) == 2
        assert response["data"]["pagination"] == {
            "page": 1,
            "limit": 2,
            "total": 3,
            "totalPages": 2,
            "hasNext": True,
            "hasPrev": False,
        }

    @pytest.mark.asyncio
    async def test_list_products_is_cached(self, service, catalog_products, fake_redis):
        first = await service.list_products(SearchQuery())
        calls = catalog_products.find_calls
        second = await service.list_products(SearchQuery())

        assert first == second
        assert catalog_products.find_calls == calls
        assert any(key.startswith("products:") for key in fake_redis.store)

    @pytest.mark.asyncio
    async def test_get_product(self, service, fake_redis):
        response = await service.get_product("apple-watch")

        assert response["data"]["product"]["name"] == "Apple Watch"
        assert isinstance(response["data"]["product"]["id"], str)
        assert "product:apple-watch" in fake_redis.store

    @pytest.mark.asyncio
    async def test_missing_product_is_not_cached(self, service, fake_redis):
        with pytest.raises(ProductNotFoundError):
            await service.get_product("nope")
        assert "product:nope" not in fake_redis.store

    @pytest.mark.asyncio
    async def test_reads_work_without_cache(self, catalog_products):
        service = CatalogService(
            catalog_products,
            CacheClient(None),
            SearchRouter(catalog_products),
            SearchIndexer(catalog_products, None),
        )
        response = await service.get_product("apple-iphone-15")
        assert response["data"]["product"]["price"] == 999.0


class TestWrites:
    @pytest.mark.asyncio
    async def test_create_indexes_and_invalidates(self, service, catalog_products, search_index, fake_redis):
        seed_listing_keys(fake_redis)

        product = await service.create_product(new_product())

        assert product["slug"] == "google-pixel-8"
        assert product["sku"] == "GP-8"
        assert "createdAt" in product and "updatedAt" in product
        assert len(catalog_products.documents) == 4
        search_index.index.assert_awaited_once()
        assert search_index.index.await_args.kwargs["id"] == product["id"]
        assert sorted(fake_redis.store) == ["other:key", "product:apple-watch"]

    @pytest.mark.asyncio
    async def test_create_duplicate_slug(self, service, search_index):
        with pytest.raises(DuplicateProductError):
            await service.create_product(new_product(name="Apple Watch"))
        search_index.index.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_index_failure_does_not_fail_write(self, service, catalog_products, search_index):
        search_index.index = AsyncMock(side_effect=ESConnectionError("connection refused"))

        product = await service.create_product(new_product())

        assert product["name"] == "Google Pixel 8"
        assert len(catalog_products.documents) == 4

    @pytest.mark.asyncio
    async def test_cache_outage_does_not_fail_write(self, service, catalog_products, fake_redis):
        fake_redis.fail = True
        product = await service.create_product(new_product())
        assert product["slug"] == "google-pixel-8"

    @pytest.mark.asyncio
    async def test_update_invalidates_old_and_new_slug(self, service, catalog_products, fake_redis):
        seed_listing_keys(fake_redis)
        watch_id = product_id(catalog_products, "Apple Watch")

        product = await service.update_product(watch_id, ProductUpdate(slug="Apple Watch Ultra", price=799))

        assert product["slug"] == "apple-watch-ultra"
        assert product["price"] == 799.0
        assert sorted(fake_redis.store) == ["other:key"]

    @pytest.mark.asyncio
    async def test_update_reindexes_document(self, service, catalog_products, search_index):
        watch_id = product_id(catalog_products, "Apple Watch")

        await service.update_product(watch_id, ProductUpdate(stock=0))

        document = search_index.index.await_args.kwargs["document"]
        assert document["stock"] == 0
        assert document["name"] == "Apple Watch"

    @pytest.mark.asyncio
    async def test_update_with_unsluggable_slug_keeps_existing(self, service, catalog_products):
        watch_id = product_id(catalog_products, "Apple Watch")

        product = await service.update_product(watch_id, ProductUpdate(slug="!!!", price=349))

        assert product["slug"] == "apple-watch"
        assert product["price"] == 349.0
        assert (await service.get_product("apple-watch"))["data"]["product"]["price"] == 349.0

    @pytest.mark.asyncio
    async def test_create_with_unsluggable_slug_uses_name(self, service):
        product = await service.create_product(new_product(slug="!!!"))
        assert product["slug"] == "google-pixel-8"

    @pytest.mark.asyncio
    async def test_update_invalid_id(self, service):
        with pytest.raises(InvalidProductIdError):
            await service.update_product("not-an-id", ProductUpdate(price=1))

    @pytest.mark.asyncio
    async def test_update_missing_product(self, service):
        with pytest.raises(ProductNotFoundError):
            await service.update_product(str(ObjectId()), ProductUpdate(price=1))

    @pytest.mark.asyncio
    async def test_delete_removes_from_index_and_cache(self, service, catalog_products, search_index, fake_redis):
        seed_listing_keys(fake_redis)
        watch_id = product_id(catalog_products, "Apple Watch")

        product = await service.delete_product(watch_id)

        assert product["name"] == "Apple Watch"
        assert len(catalog_products.documents) == 2
        search_index.delete.assert_awaited_once()
        assert search_index.delete.await_args.kwargs["id"] == watch_id
        assert sorted(fake_redis.store) == ["other:key"]

    @pytest.mark.asyncio
    async def test_delete_missing_product(self, service):
        with pytest.raises(ProductNotFoundError):
            await service.delete_product(str(ObjectId()))
