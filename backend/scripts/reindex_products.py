"""
Rebuild the Elasticsearch products index from MongoDB.

This script:
1. Connects to MongoDB (required) and Elasticsearch (required here)
2. Optionally drops and recreates the index with the current mapping
3. Streams every product into the index in bulk batches
4. Exits non-zero if any document failed

Usage:
    python scripts/reindex_products.py [--recreate] [--batch-size N]
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from catalog.core.config import Settings
from catalog.core.database import close_database, connect_database, get_database, get_products_collection
from catalog.core.logging import configure_logging, get_logger
from catalog.core.search_index import close_search_index, connect_search_index, ensure_index
from catalog.services.search.indexing import SearchIndexer

configure_logging(log_level="INFO", json_output=False)
logger = get_logger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rebuild the products search index")
    parser.add_argument("--recreate", action="store_true", help="Drop and recreate the index first")
    parser.add_argument("--batch-size", type=int, default=None, help="Documents per bulk request")
    return parser.parse_args()


async def run(args: argparse.Namespace) -> int:
    settings = Settings.from_env()
    batch_size = args.batch_size or settings.reindex_batch_size

    mongo = await connect_database(settings)
    search_index = await connect_search_index(settings)
    try:
        if search_index is None:
            logger.error("reindex_script_index_unavailable", node=settings.elasticsearch_node)
            return 1

        if args.recreate:
            await search_index.indices.delete(index=settings.search_index_name, ignore_unavailable=True)
            await ensure_index(search_index, settings.search_index_name)
            logger.info("reindex_script_index_recreated", index=settings.search_index_name)

        products = get_products_collection(get_database(mongo, settings))
        indexer = SearchIndexer(
            products,
            search_index,
            index_name=settings.search_index_name,
            batch_size=batch_size,
        )
        result = await indexer.reindex_all()
        logger.info("reindex_script_completed", **result)
        return 0 if result["failed"] == 0 else 2
    finally:
        await close_search_index(search_index)
        await close_database(mongo)


def main():
    """Main function to rebuild the search index."""
    logger.info("reindex_script_started")
    sys.exit(asyncio.run(run(parse_args())))


if __name__ == "__main__":
    main()
