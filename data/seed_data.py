"""
Seed script to populate MongoDB with sample products for development.
Generates branded products across categories, then rebuilds the search index
when Elasticsearch is reachable.
"""
import asyncio
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add backend directory to path to import catalog modules
backend_path = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(backend_path))

from pymongo.errors import BulkWriteError, PyMongoError

from catalog.core.config import Settings
from catalog.core.database import (
    close_database,
    connect_database,
    ensure_product_indexes,
    get_database,
    get_products_collection,
)
from catalog.core.logging import configure_logging
from catalog.core.search_index import close_search_index, connect_search_index
from catalog.models.product import slugify
from catalog.services.search.indexing import SearchIndexer

# Sample catalog: category -> (brand, product name, description)
PRODUCTS = {
    "electronics": [
        ("Apple", "Apple iPhone 15", "Smart phone with an A16 chip and a 48MP camera."),
        ("Samsung", "Samsung Galaxy S21", "Android phone with a 120Hz display."),
        ("Apple", "Apple Watch Series 9", "Smart watch with health tracking."),
        ("Sony", "Sony WH-1000XM5 Headphones", "Wireless noise cancelling headphones."),
        ("Anker", "Anker Portable Power Bank", "20000mAh charger for phones and tablets."),
        ("Logitech", "Logitech MX Master Mouse", "Wireless mouse with precision scrolling."),
    ],
    "fashion": [
        ("Levi's", "Levi's 501 Denim Jeans", "Classic straight fit jeans."),
        ("Nike", "Nike Air Zoom Running Shoes", "Lightweight shoes for daily running."),
        ("Adidas", "Adidas Originals T-Shirt", "Cotton t-shirt for everyday wear."),
        ("Uniqlo", "Uniqlo Ultra Light Down Jacket", "Packable winter jacket."),
    ],
    "home": [
        ("Philips", "Philips Air Fryer XL", "Air fryer with rapid air technology."),
        ("Dyson", "Dyson V15 Vacuum Cleaner", "Cordless vacuum with laser dust detection."),
        ("KitchenAid", "KitchenAid Stand Mixer", "Tilt-head stand mixer for baking."),
        ("Nespresso", "Nespresso Vertuo Coffee Maker", "Capsule coffee maker."),
    ],
    "sports": [
        ("Manduka", "Manduka PRO Yoga Mat", "Dense cushioning yoga mat."),
        ("Wilson", "Wilson Pro Staff Tennis Racket", "Tour-level tennis racket."),
        ("Hydro Flask", "Hydro Flask Water Bottle", "Insulated stainless steel bottle."),
    ],
    "books": [
        ("Penguin", "Penguin Classics Poetry Collection", "Anthology of classic poetry."),
        ("O'Reilly", "O'Reilly Fluent Python", "Technical manual for Python programmers."),
    ],
}


def generate_products(num_copies=1):
    """Build product documents; `num_copies` > 1 adds numbered variants."""
    products = []
    now = datetime.now(timezone.utc)

    for copy in range(num_copies):
        for category, entries in PRODUCTS.items():
            for brand, name, description in entries:
                display_name = name if copy == 0 else f"{name} ({copy + 1})"
                price = round(random.uniform(10.0, 1500.0), 2)
                created_at = now - timedelta(days=random.randint(0, 180))

                products.append({
                    "name": display_name,
                    "slug": slugify(display_name),
                    "description": description,
                    "category": category,
                    "price": price,
                    "originalPrice": round(price * random.uniform(1.0, 1.3), 2),
                    "image": f"/images/{slugify(display_name)}.jpg",
                    "images": [],
                    "rating": round(random.uniform(3.0, 5.0), 1),
                    "reviewCount": random.randint(0, 2000),
                    "stock": random.randint(0, 200),
                    "lowStockThreshold": 10,
                    "sku": f"{slugify(brand)[:4].upper()}-{random.randint(100000, 999999)}",
                    "featured": random.random() < 0.2,
                    "createdAt": created_at,
                    "updatedAt": created_at,
                })
    return products


async def seed(num_copies=1):
    settings = Settings.from_env()

    try:
        mongo = await connect_database(settings)
    except PyMongoError as e:
        print(f"[ERROR] Failed to connect to MongoDB at {settings.mongodb_uri}: {e}")
        sys.exit(1)

    try:
        products = get_products_collection(get_database(mongo, settings))
        await ensure_product_indexes(products)

        print("\nGenerating products...")
        documents = generate_products(num_copies)
        try:
            result = await products.insert_many(documents, ordered=False)
            inserted = len(result.inserted_ids)
        except BulkWriteError as e:
            inserted = e.details.get("nInserted", 0)
            print(f"[WARN] {len(e.details.get('writeErrors', []))} products skipped (duplicate slug or SKU)")
        print(f"[OK] Inserted {inserted} products")

        search_index = await connect_search_index(settings)
        if search_index is None:
            print("[WARN] Elasticsearch not reachable; search will use MongoDB text search")
            return inserted

        try:
            indexer = SearchIndexer(
                products,
                search_index,
                index_name=settings.search_index_name,
                batch_size=settings.reindex_batch_size,
            )
            result = await indexer.reindex_all()
            print(f"[OK] Indexed {result['indexed']} products ({result['failed']} failed)")
        finally:
            await close_search_index(search_index)
        return inserted
    finally:
        await close_database(mongo)


def main():
    """Main function to seed the database."""
    configure_logging(log_level="WARNING", json_output=False)
    print("Starting database seeding...")
    print("-" * 50)

    copies = int(sys.argv[1]) if len(sys.argv) > 1 else 1
    inserted = asyncio.run(seed(num_copies=copies))

    print("\n" + "-" * 50)
    print("[OK] Database seeding completed successfully!")
    print(f"  - Products: {inserted}")


if __name__ == "__main__":
    main()
