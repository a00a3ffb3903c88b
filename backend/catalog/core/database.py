"""
MongoDB document store connection (PyMongo async API).

The document store is the source of truth for the catalog. Unlike Redis and
Elasticsearch it is not optional: failing to reach it at startup is fatal.
"""
from typing import List

from pymongo import ASCENDING, DESCENDING, TEXT, AsyncMongoClient, IndexModel
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import PyMongoError

from catalog.core.config import Settings
from catalog.core.logging import get_logger

logger = get_logger(__name__)

PRODUCTS_COLLECTION = "products"

# slug and sku are unique; name/description back the $text fallback search
PRODUCT_INDEXES: List[IndexModel] = [
    IndexModel([("slug", ASCENDING)], name="slug_unique", unique=True),
    IndexModel([("sku", ASCENDING)], name="sku_unique", unique=True),
    IndexModel([("category", ASCENDING)], name="category"),
    IndexModel([("featured", ASCENDING)], name="featured"),
    IndexModel([("price", ASCENDING)], name="price"),
    IndexModel([("createdAt", DESCENDING)], name="created_at_desc"),
    IndexModel([("name", TEXT), ("description", TEXT)], name="name_description_text"),
]


async def connect_database(settings: Settings) -> AsyncMongoClient:
    """
    Create the MongoDB client and verify connectivity.

    Raises:
        PyMongoError: the server could not be reached within the
            server-selection timeout
    """
    client: AsyncMongoClient = AsyncMongoClient(
        settings.mongodb_uri,
        serverSelectionTimeoutMS=settings.mongodb_timeout_ms,
        connectTimeoutMS=settings.mongodb_timeout_ms,
        tz_aware=True,
    )
    try:
        await client.admin.command("ping")
    except PyMongoError as e:
        logger.error(
            "mongodb_connection_failed",
            database=settings.mongodb_database,
            error=str(e),
            error_type=type(e).__name__,
        )
        await client.close()
        raise

    logger.info("mongodb_connected", database=settings.mongodb_database)
    return client


def get_database(client: AsyncMongoClient, settings: Settings) -> AsyncDatabase:
    return client[settings.mongodb_database]


def get_products_collection(database: AsyncDatabase) -> AsyncCollection:
    return database[PRODUCTS_COLLECTION]


async def ensure_product_indexes(products: AsyncCollection) -> None:
    """Create the product indexes if missing (idempotent)."""
    names = await products.create_indexes(PRODUCT_INDEXES)
    logger.info("mongodb_indexes_ensured", collection=PRODUCTS_COLLECTION, indexes=names)


async def close_database(client: AsyncMongoClient) -> None:
    try:
        await client.close()
        logger.info("mongodb_closed")
    except Exception as e:
        logger.error("mongodb_close_failed", error=str(e), exc_info=True)
