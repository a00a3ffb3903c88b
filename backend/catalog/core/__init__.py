"""
Core application modules.
Contains configuration, store connections, logging, metrics and tracing.
"""
from .config import Settings
from .errors import CatalogError

__all__ = ["Settings", "CatalogError"]
