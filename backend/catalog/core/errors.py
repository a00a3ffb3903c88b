"""
Domain exceptions surfaced through the HTTP error envelope.

Only failures of the primary document store and caller mistakes become
errors. Cache and search-index failures are absorbed where they happen.
"""
from typing import Optional


class CatalogError(Exception):
    """Base error with an HTTP status and a stable error code."""

    status_code = 500
    code = "SERVER_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ProductNotFoundError(CatalogError):
    status_code = 404
    code = "RESOURCE_NOT_FOUND"

    def __init__(self, identifier: str):
        super().__init__(f"Product not found: {identifier}")
        self.identifier = identifier


class DuplicateProductError(CatalogError):
    status_code = 409
    code = "DUPLICATE_RESOURCE"


class InvalidProductIdError(CatalogError):
    status_code = 400
    code = "INVALID_ID"

    def __init__(self, product_id: str):
        super().__init__(f"Invalid product id: {product_id}")
        self.product_id = product_id


class SearchBackendError(CatalogError):
    """The document store failed while serving a search; nothing left to fall back to."""

    status_code = 500
    code = "SEARCH_ERROR"
