"""
CurrentReader - Feed Reader Ingestion Engine
============================================

Subscribes to RSS/Atom feeds and keeps a local article catalog in sync with
them without losing read/saved state.

Main Components:
- Ingestion: conditional fetching, feed normalization, discovery, reader view
- Processing: keyed reconciliation and per-feed refresh leases
- Storage: SQLite catalog with connection pooling and schema management
- Configuration: environment variables with Pydantic validation
"""

__version__ = "1.0.0"
__author__ = "CurrentReader Development Team"
__description__ = "RSS/Atom ingestion and reconciliation engine"

# Core imports for easy access
from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import CurrentReaderError

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "CurrentReaderError",
]
