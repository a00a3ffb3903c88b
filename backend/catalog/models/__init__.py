"""Pydantic models for requests, results and response envelopes."""

from .product import ProductCreate, ProductUpdate, serialize_product
from .responses import error_envelope, success_envelope
from .search import SearchQuery, SearchResult, SortMode

__all__ = [
    "ProductCreate",
    "ProductUpdate",
    "serialize_product",
    "error_envelope",
    "success_envelope",
    "SearchQuery",
    "SearchResult",
    "SortMode",
]
