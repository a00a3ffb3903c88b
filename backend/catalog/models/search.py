"""
Search request and result models.

A SearchQuery is built per request from the query string; a SearchResult is
what either search backend produces, already holding canonical products.
"""
import math
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class SortMode(str, Enum):
    NEWEST = "newest"
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"
    POPULAR = "popular"
    RELEVANCE = "relevance"


class SearchQuery(BaseModel):
    """
    Free-text term, hard filters, pagination and sort.

    `relevance` only has meaning for the search index; the database path
    serves it as `newest`.
    """

    text: Optional[str] = None
    category: Optional[str] = None
    price_min: Optional[float] = Field(None, ge=0)
    price_max: Optional[float] = Field(None, ge=0)
    featured: Optional[bool] = None
    brands: List[str] = Field(default_factory=list)
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    sort: SortMode = SortMode.RELEVANCE

    @field_validator("text", "category", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("brands", mode="before")
    @classmethod
    def split_brands(cls, value: Any) -> Any:
        # ?brands=Apple,Samsung
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            return [brand.strip() for brand in value if isinstance(brand, str) and brand.strip()]
        return value

    @model_validator(mode="after")
    def check_price_range(self) -> "SearchQuery":
        if self.price_min is not None and self.price_max is not None and self.price_min > self.price_max:
            raise ValueError("price_min must not exceed price_max")
        return self

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def cache_params(self) -> Dict[str, Any]:
        """JSON-safe parameters for build_key."""
        return self.model_dump(mode="json")


class SearchResult(BaseModel):
    products: List[Dict[str, Any]]
    total: int
    page: int
    limit: int
    total_pages: int
    backend: str

    @classmethod
    def build(
        cls,
        products: List[Dict[str, Any]],
        total: int,
        page: int,
        limit: int,
        backend: str,
    ) -> "SearchResult":
        return cls(
            products=products,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if limit else 0,
            backend=backend,
        )

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def pagination(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
            "hasNext": self.has_next,
            "hasPrev": self.has_prev,
        }
