"""Search services: index/database routing, index sync and suggestions."""

from .indexing import SearchIndexer
from .router import SearchRouter
from .suggestions import suggest

__all__ = ["SearchIndexer", "SearchRouter", "suggest"]
