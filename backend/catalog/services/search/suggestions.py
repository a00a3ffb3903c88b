"""
Search-as-you-type suggestions from MongoDB.

Suggestions are words from matching product names that extend the typed term,
followed by the categories of the matching products.
"""
import re
from typing import Any, Dict, List, Optional

from pymongo.asynchronous.collection import AsyncCollection

from catalog.core.logging import get_logger

logger = get_logger(__name__)

MIN_TERM_LENGTH = 2
SUGGESTION_FIELDS = {"_id": 0, "name": 1, "slug": 1, "image": 1, "price": 1, "category": 1}


def build_suggestion_filter(term: str, category: Optional[str] = None) -> Dict[str, Any]:
    pattern = {"$regex": re.escape(term), "$options": "i"}
    matches = [{"name": pattern}, {"description": pattern}, {"category": pattern}]

    if category and category.lower() != "all":
        return {
            "$and": [
                {"$or": matches},
                {"category": {"$regex": re.escape(category), "$options": "i"}},
            ]
        }
    return {"$or": matches}


def extract_suggestions(term: str, products: List[Dict[str, Any]], limit: int) -> List[str]:
    lowered = term.lower()
    suggestions: Dict[str, None] = {}

    for product in products:
        name = product.get("name") or ""
        if lowered in name.lower():
            for word in name.split():
                if word.lower().startswith(lowered) and len(word) > len(term):
                    suggestions.setdefault(word, None)
        category = product.get("category")
        if category:
            suggestions.setdefault(category, None)

    return list(suggestions)[:limit]


async def suggest(
    products: AsyncCollection,
    text: Optional[str],
    limit: int = 5,
    category: Optional[str] = None,
) -> Dict[str, Any]:
    term = (text or "").strip()
    if len(term) < MIN_TERM_LENGTH:
        return {"suggestions": [], "products": []}

    cursor = products.find(build_suggestion_filter(term, category), SUGGESTION_FIELDS).limit(limit)
    matches = await cursor.to_list(length=limit)
    suggestions = extract_suggestions(term, matches, limit)

    logger.debug(
        "search_suggestions_generated",
        query=term,
        suggestions_count=len(suggestions),
        products_count=len(matches),
    )
    return {
        "suggestions": suggestions,
        "products": [
            {field: product.get(field) for field in ("name", "slug", "image", "price", "category")}
            for product in matches
        ],
    }
