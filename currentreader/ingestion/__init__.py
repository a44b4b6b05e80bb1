"""
CurrentReader Ingestion Module
==============================

Feed ingestion components.

This module handles:
- Conditional HTTP fetching with cache validators
- RSS/Atom normalization into catalog models
- HTML sanitization and text extraction
- Feed discovery and reader view extraction
"""
