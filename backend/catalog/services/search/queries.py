"""
Query builders for the two search backends.

Both backends must agree on what a SearchQuery means:
- text: Elasticsearch multi_match (name^3, description^2, category, fuzzy)
  vs MongoDB $text over the name/description text index
- category: exact keyword (lowercase normalized) vs escaped case-insensitive
  substring
- brands: name prefix per brand, OR'd; in MongoDB the prefix must end at
  whitespace or end of name, and the brand group is AND'ed with $text
- sort: same field mapping; `relevance` is index scoring in Elasticsearch
  and `newest` in MongoDB

Pure functions, no I/O.
"""
import re
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING

from catalog.models.search import SearchQuery, SortMode

TEXT_FIELDS = ["name^3", "description^2", "category"]

_INDEX_SORTS: Dict[SortMode, List[Dict[str, Any]]] = {
    SortMode.PRICE_ASC: [{"price": {"order": "asc"}}],
    SortMode.PRICE_DESC: [{"price": {"order": "desc"}}],
    SortMode.POPULAR: [{"reviewCount": {"order": "desc"}}, {"rating": {"order": "desc"}}],
    SortMode.NEWEST: [{"createdAt": {"order": "desc"}}],
}

_DATABASE_SORTS: Dict[SortMode, List[Tuple[str, int]]] = {
    SortMode.PRICE_ASC: [("price", ASCENDING)],
    SortMode.PRICE_DESC: [("price", DESCENDING)],
    SortMode.POPULAR: [("reviewCount", DESCENDING), ("rating", DESCENDING)],
    SortMode.NEWEST: [("createdAt", DESCENDING)],
}


# ---------------------------------------------------------------------------
# Elasticsearch
# ---------------------------------------------------------------------------

def build_index_query(query: SearchQuery) -> Dict[str, Any]:
    """Elasticsearch bool query: scored text match plus non-scoring filters."""
    if query.text:
        must: List[Dict[str, Any]] = [{
            "multi_match": {
                "query": query.text,
                "fields": TEXT_FIELDS,
                "type": "best_fields",
                "fuzziness": "AUTO",
            },
        }]
    else:
        must = [{"match_all": {}}]

    filters: List[Dict[str, Any]] = []

    if query.category:
        filters.append({"term": {"category": query.category.lower()}})

    price_range = {}
    if query.price_min is not None:
        price_range["gte"] = query.price_min
    if query.price_max is not None:
        price_range["lte"] = query.price_max
    if price_range:
        filters.append({"range": {"price": price_range}})

    if query.featured is not None:
        filters.append({"term": {"featured": query.featured}})

    if query.brands:
        filters.append({
            "bool": {
                "should": [
                    {"prefix": {"name.keyword": {"value": brand, "case_insensitive": True}}}
                    for brand in query.brands
                ],
                "minimum_should_match": 1,
            },
        })

    return {"bool": {"must": must, "filter": filters}}


def build_index_sort(sort: SortMode) -> Optional[List[Dict[str, Any]]]:
    """Explicit sort, or None to keep Elasticsearch relevance scoring."""
    clauses = _INDEX_SORTS.get(sort)
    return list(clauses) if clauses else None


# ---------------------------------------------------------------------------
# MongoDB
# ---------------------------------------------------------------------------

def brand_pattern(brand: str) -> str:
    """Anchored, escaped name prefix: the brand followed by whitespace or the end."""
    return rf"^{re.escape(brand)}(\s|$)"


def build_database_filter(query: SearchQuery) -> Dict[str, Any]:
    """MongoDB filter equivalent to build_index_query."""
    mongo_filter: Dict[str, Any] = {}

    if query.category:
        mongo_filter["category"] = {"$regex": re.escape(query.category), "$options": "i"}

    price_range = {}
    if query.price_min is not None:
        price_range["$gte"] = query.price_min
    if query.price_max is not None:
        price_range["$lte"] = query.price_max
    if price_range:
        mongo_filter["price"] = price_range

    if query.featured is not None:
        mongo_filter["featured"] = query.featured

    text_clause = {"$text": {"$search": query.text}} if query.text else None

    if query.brands:
        brand_conditions = [
            {"name": {"$regex": brand_pattern(brand), "$options": "i"}}
            for brand in query.brands
        ]
        if text_clause:
            # $text cannot sit inside $or, and merging would relax the text match
            mongo_filter["$and"] = [text_clause, {"$or": brand_conditions}]
        else:
            mongo_filter["$or"] = brand_conditions
    elif text_clause:
        mongo_filter.update(text_clause)

    return mongo_filter


def build_database_sort(sort: SortMode) -> List[Tuple[str, int]]:
    """MongoDB sort order; `relevance` degrades to `newest`. `_id` breaks ties."""
    clauses = _DATABASE_SORTS.get(sort, _DATABASE_SORTS[SortMode.NEWEST])
    return list(clauses) + [("_id", DESCENDING)]
