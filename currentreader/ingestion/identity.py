"""
Identity Hashing
================

Stable, process-independent identifiers for feeds and articles.

A feed's id is derived from its URL; an article's id is derived from its feed id
plus the first available upstream key (guid, link, title, publish timestamp,
body text).
The same input always yields the same id, which is what lets a refresh find the
record it created last time.
"""

import hashlib
from datetime import datetime
from typing import Optional

DEFAULT_ID_LENGTH = 16


def hash_id(value: str, length: int = DEFAULT_ID_LENGTH) -> str:
    """Hash a string into a short hex identifier.

    Args:
        value: Input string
        length: Hex characters of the SHA-256 digest to keep

    Returns:
        Lowercase hex identifier of exactly ``length`` characters
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:length]


def feed_id_for(feed_url: str, length: int = DEFAULT_ID_LENGTH) -> str:
    """Identity of a feed. The URL is hashed exactly as given."""
    return hash_id(feed_url, length)


def article_key(
    guid: Optional[str] = None,
    link: Optional[str] = None,
    title: Optional[str] = None,
    published_at: Optional[datetime] = None,
    content: Optional[str] = None,
) -> str:
    """Pick the dedup key for an item: guid, link, title, timestamp, then content.

    Blank strings count as absent. Callers pass ``published_at`` only when the
    timestamp came from the document, never an ingestion-time stand-in.
    """
    for candidate in (guid, link, title):
        if candidate and candidate.strip():
            return candidate
    if published_at is not None:
        return published_at.isoformat()
    if content and content.strip():
        return "content:" + hash_id(content.strip(), 64)
    return ""


def article_id_for(
    feed_id: str,
    guid: Optional[str] = None,
    link: Optional[str] = None,
    title: Optional[str] = None,
    published_at: Optional[datetime] = None,
    length: int = DEFAULT_ID_LENGTH,
    content: Optional[str] = None,
) -> str:
    """Identity of an article within its feed.

    Args:
        feed_id: Owning feed id
        guid: Upstream guid / Atom id
        link: Item link
        title: Item title
        published_at: Upstream publish timestamp, used only when nothing above
            is present
        length: Hex characters to keep
        content: Item body text, the last resort for keyless, undated items

    Returns:
        Article identifier
    """
    key = article_key(guid, link, title, published_at, content)
    return hash_id(f"{feed_id}:{key}", length)
