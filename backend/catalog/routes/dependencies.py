"""
Shared query-parameter parsing for the listing and search endpoints.

GET /products and GET /search accept the same filters:
q (`search` on the listing), category, minPrice, maxPrice, featured,
brands (comma-separated), page, limit, sort.
"""
from typing import Optional

from fastapi import Query
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from catalog.models.search import SearchQuery, SortMode


def _build_query(**values) -> SearchQuery:
    try:
        return SearchQuery(**values)
    except ValidationError as e:
        # Surface model-level checks (price range) as a regular 422
        raise RequestValidationError(e.errors(include_url=False)) from e


def search_query_params(
    q: Optional[str] = Query(None, description="Free-text search term"),
    category: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    featured: Optional[bool] = Query(None),
    brands: Optional[str] = Query(None, description="Comma-separated brand names"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort: SortMode = Query(SortMode.RELEVANCE),
) -> SearchQuery:
    return _build_query(
        text=q,
        category=category,
        price_min=min_price,
        price_max=max_price,
        featured=featured,
        brands=brands,
        page=page,
        limit=limit,
        sort=sort,
    )


def listing_query_params(
    search: Optional[str] = Query(None, description="Free-text search term"),
    category: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    featured: Optional[bool] = Query(None),
    brands: Optional[str] = Query(None, description="Comma-separated brand names"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort: SortMode = Query(SortMode.NEWEST),
) -> SearchQuery:
    return _build_query(
        text=search,
        category=category,
        price_min=min_price,
        price_max=max_price,
        featured=featured,
        brands=brands,
        page=page,
        limit=limit,
        sort=sort,
    )
