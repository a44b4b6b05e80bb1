"""
CurrentReader Input Validators
==============================

Validation utilities for feed URLs, tags and search input.
"""

import re
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation utilities."""

    # Allowed schemes for feeds and article pages
    ALLOWED_SCHEMES = {"http", "https"}

    # Common RSS/Atom feed link patterns
    FEED_LINK_PATTERN = re.compile(r"\.(rss|xml|atom)(\?|$)", re.IGNORECASE)

    @classmethod
    def validate_feed_url(cls, url: str) -> str:
        """Validate a feed URL.

        The URL is returned stripped but otherwise untouched: the feed id is
        derived from this exact string.

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url",
            )

        url = url.strip()

        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {e}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            ) from e

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                f"URL scheme must be {' or '.join(sorted(cls.ALLOWED_SCHEMES))}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        return url

    @classmethod
    def is_likely_feed_url(cls, url: str) -> bool:
        """Check if a link looks like an RSS/Atom document."""
        return bool(cls.FEED_LINK_PATTERN.search(url))

    @classmethod
    def origin(cls, url: str) -> str:
        """Return ``scheme://host[:port]`` for a URL, or the URL itself if it has none."""
        try:
            parsed = urlparse(url)
        except ValueError:
            return url
        if not parsed.scheme or not parsed.netloc:
            return url
        return f"{parsed.scheme}://{parsed.netloc}"


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Collapse a tag collection into a sorted set of stripped, non-empty strings."""
    if not tags:
        return []
    cleaned = {tag.strip() for tag in tags if isinstance(tag, str) and tag.strip()}
    return sorted(cleaned)


def validate_search_query(query: str) -> str:
    """Validate a catalog search query."""
    if not query or not isinstance(query, str) or not query.strip():
        raise ValidationError(
            "Search query cannot be empty",
            error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
            field_name="query",
        )
    return query.strip()
