"""
CurrentReader Services
======================

Shared service layer for business logic used across interfaces (CLI, schedulers).
"""

from .ingestion_service import IngestionService

__all__ = [
    'IngestionService',
]
