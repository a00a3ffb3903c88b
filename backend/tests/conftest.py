"""
Shared fixtures and in-memory stand-ins for Redis, MongoDB and Elasticsearch.

The fakes implement only the calls the catalog makes, with the same
signatures as redis.asyncio.Redis, pymongo's AsyncCollection/AsyncCursor and
AsyncElasticsearch.
"""
import fnmatch
import re
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from redis.exceptions import ConnectionError as RedisConnectionError

from catalog.context import AppContext
from catalog.core.cache import CacheClient
from catalog.core.config import Settings


# ============================================================================
# Redis
# ============================================================================

class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """Key/value store with TTLs driven by FakeClock. Set `fail` to simulate an outage."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock or FakeClock()
        self.store: Dict[str, Any] = {}
        self.expires_at: Dict[str, float] = {}
        self.fail = False
        self.closed = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("Connection refused")

    def _alive(self, key: str) -> bool:
        if key not in self.store:
            return False
        expires_at = self.expires_at.get(key)
        if expires_at is not None and self.clock() >= expires_at:
            del self.store[key]
            del self.expires_at[key]
            return False
        return True

    async def ping(self) -> bool:
        self._check()
        return True

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.store[key] if self._alive(key) else None

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check()
        self.store[key] = value
        self.expires_at[key] = self.clock() + ttl
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        deleted = 0
        for key in keys:
            if self._alive(key):
                del self.store[key]
                self.expires_at.pop(key, None)
                deleted += 1
        return deleted

    async def scan_iter(self, match: str = "*", count: Optional[int] = None):
        self._check()
        for key in list(self.store):
            if self._alive(key) and fnmatch.fnmatchcase(key, match):
                yield key

    async def flushdb(self) -> bool:
        self._check()
        self.store.clear()
        self.expires_at.clear()
        return True

    async def aclose(self) -> None:
        self.closed = True


# ============================================================================
# MongoDB
# ============================================================================

_WORD = re.compile(r"[a-z0-9]+")


def _tokens(value: Any) -> set:
    return set(_WORD.findall(str(value or "").lower()))


def _text_match(document: Dict[str, Any], search: str) -> bool:
    # Any search term matching a whole word in name or description
    words = _tokens(document.get("name")) | _tokens(document.get("description"))
    return bool(_tokens(search) & words)


def _match_field(value: Any, condition: Any) -> bool:
    if not (isinstance(condition, dict) and any(key.startswith("$") for key in condition)):
        return value == condition

    for operator, argument in condition.items():
        if operator == "$options":
            continue
        if operator == "$in":
            if value not in argument:
                return False
        elif operator == "$gte":
            if value is None or value < argument:
                return False
        elif operator == "$lte":
            if value is None or value > argument:
                return False
        elif operator == "$regex":
            flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
            if not isinstance(value, str) or not re.search(argument, value, flags):
                return False
        else:
            raise NotImplementedError(f"operator {operator}")
    return True


def matches(document: Dict[str, Any], mongo_filter: Dict[str, Any]) -> bool:
    for key, condition in mongo_filter.items():
        if key == "$and":
            if not all(matches(document, clause) for clause in condition):
                return False
        elif key == "$or":
            if not any(matches(document, clause) for clause in condition):
                return False
        elif key == "$text":
            if not _text_match(document, condition["$search"]):
                return False
        elif not _match_field(document.get(key), condition):
            return False
    return True


def _project(document: Dict[str, Any], projection: Optional[Dict[str, int]]) -> Dict[str, Any]:
    if not projection:
        return dict(document)
    included = [field for field, flag in projection.items() if flag and field != "_id"]
    projected = {field: document[field] for field in included if field in document}
    if projection.get("_id", 1):
        projected["_id"] = document["_id"]
    return projected


class FakeCursor:
    def __init__(self, collection: "FakeCollection", mongo_filter, projection):
        self._collection = collection
        self._filter = mongo_filter or {}
        self._projection = projection
        self._sort: List = []
        self._skip = 0
        self._limit = 0

    def sort(self, key_or_list, direction=None) -> "FakeCursor":
        if isinstance(key_or_list, str):
            self._sort = [(key_or_list, direction or 1)]
        else:
            self._sort = list(key_or_list)
        return self

    def skip(self, count: int) -> "FakeCursor":
        self._skip = count
        return self

    def limit(self, count: int) -> "FakeCursor":
        self._limit = count
        return self

    def _results(self) -> List[Dict[str, Any]]:
        if self._collection.fail:
            raise self._collection.fail
        documents = [doc for doc in self._collection.documents if matches(doc, self._filter)]
        for field, direction in reversed(self._sort):
            documents.sort(
                key=lambda doc: (doc.get(field) is not None, doc.get(field)),
                reverse=direction < 0,
            )
        documents = documents[self._skip:]
        if self._limit:
            documents = documents[:self._limit]
        return [_project(doc, self._projection) for doc in documents]

    async def to_list(self, length: Optional[int] = None) -> List[Dict[str, Any]]:
        results = self._results()
        return results[:length] if length else results

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for document in self._results():
            yield document


class FakeDatabase:
    def __init__(self):
        self.ping_error: Optional[Exception] = None

    async def command(self, name: str) -> Dict[str, Any]:
        if self.ping_error:
            raise self.ping_error
        return {"ok": 1}


class FakeCollection:
    """Products collection with unique slug and sku, like the real indexes."""

    UNIQUE_FIELDS = ("slug", "sku")

    def __init__(self, documents: Optional[List[Dict[str, Any]]] = None):
        self.documents: List[Dict[str, Any]] = []
        self.database = FakeDatabase()
        self.fail: Optional[Exception] = None
        self.find_calls = 0
        for document in documents or []:
            self.add(document)

    def add(self, document: Dict[str, Any]) -> Dict[str, Any]:
        document = dict(document)
        document.setdefault("_id", ObjectId())
        self.documents.append(document)
        return document

    def _check_unique(self, document: Dict[str, Any], ignore_id=None) -> None:
        for field in self.UNIQUE_FIELDS:
            if field not in document:
                continue
            for other in self.documents:
                if other["_id"] != ignore_id and other.get(field) == document[field]:
                    raise DuplicateKeyError(f"E11000 duplicate key error dup key: {field}")

    def _first(self, mongo_filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self.fail:
            raise self.fail
        return next((doc for doc in self.documents if matches(doc, mongo_filter)), None)

    def find(self, mongo_filter=None, projection=None, batch_size: int = 0, **kwargs) -> FakeCursor:
        self.find_calls += 1
        return FakeCursor(self, mongo_filter, projection)

    async def find_one(self, mongo_filter=None, projection=None) -> Optional[Dict[str, Any]]:
        document = self._first(mongo_filter or {})
        return _project(document, projection) if document is not None else None

    async def count_documents(self, mongo_filter: Dict[str, Any]) -> int:
        if self.fail:
            raise self.fail
        return sum(1 for doc in self.documents if matches(doc, mongo_filter))

    async def insert_one(self, document: Dict[str, Any]):
        self._check_unique(document)
        stored = self.add(document)
        document["_id"] = stored["_id"]
        return SimpleNamespace(inserted_id=stored["_id"])

    async def find_one_and_update(self, mongo_filter, update, return_document=ReturnDocument.BEFORE):
        document = self._first(mongo_filter)
        if document is None:
            return None
        changes = update.get("$set", {})
        self._check_unique(changes, ignore_id=document["_id"])
        before = dict(document)
        document.update(changes)
        return dict(document) if return_document == ReturnDocument.AFTER else before

    async def find_one_and_delete(self, mongo_filter):
        document = self._first(mongo_filter)
        if document is not None:
            self.documents.remove(document)
        return document


# ============================================================================
# Elasticsearch
# ============================================================================

def make_search_index(hit_ids: Optional[List[str]] = None, total: Optional[int] = None) -> MagicMock:
    """AsyncElasticsearch double whose search() returns `hit_ids` in order."""
    hit_ids = hit_ids or []
    client = MagicMock()
    client.search = AsyncMock(return_value={
        "hits": {
            "total": {"value": len(hit_ids) if total is None else total, "relation": "eq"},
            "hits": [{"_id": hit_id, "_score": 1.0} for hit_id in hit_ids],
        },
    })
    client.index = AsyncMock(return_value={"result": "created"})
    client.delete = AsyncMock(return_value={"result": "deleted"})
    client.bulk = AsyncMock(return_value={"errors": False, "items": []})
    client.close = AsyncMock()
    return client


# ============================================================================
# Sample data
# ============================================================================

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_product(name: str, description: str = "", category: str = "electronics", **fields) -> Dict[str, Any]:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    product = {
        "name": name,
        "slug": slug,
        "description": description or f"{name} description",
        "category": category,
        "price": 100.0,
        "image": f"/images/{slug}.jpg",
        "rating": 4.0,
        "reviewCount": 10,
        "stock": 5,
        "sku": slug.upper()[:20],
        "featured": False,
        "createdAt": BASE_TIME,
        "updatedAt": BASE_TIME,
    }
    product.update(fields)
    return product


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def cache(fake_redis):
    return CacheClient(fake_redis)


@pytest.fixture
def disabled_cache():
    return CacheClient(None)


@pytest.fixture
def catalog_products():
    """Three branded products; only the iPhone is an Apple phone."""
    return FakeCollection([
        make_product(
            "Apple iPhone 15",
            "Smart phone with a great camera",
            price=999.0,
            reviewCount=500,
            createdAt=BASE_TIME + timedelta(days=3),
        ),
        make_product(
            "Samsung Galaxy S21",
            "Android phone with a fast display",
            price=799.0,
            reviewCount=300,
            createdAt=BASE_TIME + timedelta(days=2),
        ),
        make_product(
            "Apple Watch",
            "Smart watch for fitness",
            price=399.0,
            reviewCount=200,
            featured=True,
            createdAt=BASE_TIME + timedelta(days=1),
        ),
    ])


@pytest.fixture
def settings():
    return Settings(elasticsearch_enabled=False, log_json=False)


@pytest.fixture
def app_context(settings, catalog_products, fake_redis):
    return AppContext.build(settings, catalog_products, redis=fake_redis)
