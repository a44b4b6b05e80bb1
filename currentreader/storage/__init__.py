"""
CurrentReader Storage Layer
===========================

Repository implementation for catalog data access.

This module provides:
- Keyed get/put/delete for feeds and articles
- Named index queries and substring search
- JSON-encoded metadata values
"""

from .catalog_store import CatalogStore

__all__ = [
    "CatalogStore",
]
