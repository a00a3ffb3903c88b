"""
Product payloads and document helpers.

Products are stored in MongoDB with camelCase field names (originalPrice,
reviewCount, createdAt, ...) and travel through the service as plain dicts.
The pydantic models here only validate admin writes.
"""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator


def slugify(value: str) -> str:
    """'Apple iPhone 15 (128GB)' -> 'apple-iphone-15-128gb'"""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower())
    return slug.strip("-")


def serialize_document(value: Any) -> Any:
    """Make a MongoDB document JSON-safe: ObjectId -> str, datetime -> ISO 8601."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: serialize_document(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_document(item) for item in value]
    return value


def serialize_product(document: Dict[str, Any]) -> Dict[str, Any]:
    """Canonical product as returned by the API; `_id` is mirrored as `id`."""
    product = serialize_document(document)
    if "_id" in product:
        product["id"] = product["_id"]
    return product


class ProductBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    @field_validator("sku", check_fields=False)
    @classmethod
    def uppercase_sku(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().upper() if value else value

    @field_validator("slug", check_fields=False)
    @classmethod
    def normalize_slug(cls, value: Optional[str]) -> Optional[str]:
        # "!!!" has no slug; treat it as unset
        return (slugify(value) or None) if value else value

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ProductCreate(ProductBase):
    """Payload for POST /admin/products."""

    name: str = Field(..., min_length=1, max_length=200)
    slug: Optional[str] = None
    description: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0, alias="originalPrice")
    category: str = Field(..., min_length=1)
    image: str
    images: List[str] = Field(default_factory=list)
    rating: float = Field(0, ge=0, le=5)
    review_count: int = Field(0, ge=0, alias="reviewCount")
    stock: int = Field(0, ge=0)
    low_stock_threshold: int = Field(10, ge=0, alias="lowStockThreshold")
    sku: str = Field(..., min_length=1)
    featured: bool = False

    def to_document(self) -> Dict[str, Any]:
        document = super().to_document()
        if not document.get("slug"):
            document["slug"] = slugify(self.name)
        return document


class ProductUpdate(ProductBase):
    """Payload for PUT /admin/products/{product_id}; only set fields change."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    slug: Optional[str] = None
    description: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0, alias="originalPrice")
    category: Optional[str] = Field(None, min_length=1)
    image: Optional[str] = None
    images: Optional[List[str]] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    review_count: Optional[int] = Field(None, ge=0, alias="reviewCount")
    stock: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0, alias="lowStockThreshold")
    sku: Optional[str] = None
    featured: Optional[bool] = None
