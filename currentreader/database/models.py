"""
CurrentReader Data Models
=========================

Pydantic data models for the article catalog. These models correspond to the
database schema and provide validation, serialization, and type hints.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator

from ..utils.validators import normalize_tags


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CacheValidator(BaseModel):
    """HTTP cache validators remembered between fetches of one feed."""
    etag: Optional[str] = Field(default=None, description="ETag of the last full response")
    last_modified: Optional[str] = Field(default=None, description="Last-Modified of the last full response")

    def is_empty(self) -> bool:
        return not self.etag and not self.last_modified


class Feed(BaseModel):
    """Subscribed syndication source."""
    id: str = Field(..., min_length=1, description="Identity hash of feed_url")
    title: str = Field(..., description="Display title")
    feed_url: str = Field(..., min_length=1, description="URL the feed is fetched from")
    site_url: str = Field(..., description="Home page of the publishing site")
    tags: List[str] = Field(default_factory=list, description="Caller-owned tag set")
    created_at: datetime = Field(default_factory=utc_now)
    last_fetched_at: Optional[datetime] = Field(default=None, description="Last fetch attempt that reached upstream")
    cache_validator: CacheValidator = Field(default_factory=CacheValidator)

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v):
        """Tags behave as a set: stripped, de-duplicated, sorted."""
        if isinstance(v, str):
            v = json.loads(v)
        return normalize_tags(v)

    @field_validator("created_at", "last_fetched_at")
    @classmethod
    def ensure_utc(cls, v):
        return _as_utc(v)

    def to_db_row(self) -> Dict[str, Any]:
        """Flatten into column values for the feeds table."""
        return {
            "id": self.id,
            "title": self.title,
            "feed_url": self.feed_url,
            "site_url": self.site_url,
            "tags": json.dumps(self.tags),
            "created_at": self.created_at.isoformat(),
            "last_fetched_at": self.last_fetched_at.isoformat() if self.last_fetched_at else None,
            "etag": self.cache_validator.etag,
            "last_modified": self.cache_validator.last_modified,
        }

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Feed":
        """Create Feed from a database row with JSON parsing."""
        data = dict(row)
        data["cache_validator"] = CacheValidator(
            etag=data.pop("etag", None),
            last_modified=data.pop("last_modified", None),
        )
        return cls(**data)

    def __str__(self) -> str:
        return f"Feed({self.title or self.feed_url})"


# Fields a refresh or reader extraction may overwrite. read/saved are never among them.
ARTICLE_CONTENT_FIELDS = (
    "title",
    "url",
    "author",
    "published_at",
    "snippet",
    "content_text",
    "content_html",
)


class Article(BaseModel):
    """One normalized entry belonging to exactly one feed."""
    id: str = Field(..., min_length=1, description="Identity hash of feed_id and item key")
    feed_id: str = Field(..., min_length=1, description="Owning feed ID")
    title: str = Field(default="Untitled")
    url: str = Field(default="", description="Article link; empty when the item has none")
    author: Optional[str] = Field(default=None)
    published_at: Optional[datetime] = Field(default=None)
    published_at_inferred: bool = Field(
        default=False, description="True when published_at was stamped at ingestion time"
    )
    snippet: Optional[str] = Field(default=None)
    content_text: Optional[str] = Field(default=None)
    content_html: Optional[str] = Field(default=None)
    read: bool = Field(default=False, description="User-owned read flag")
    saved: bool = Field(default=False, description="User-owned saved flag")

    @field_validator("published_at")
    @classmethod
    def ensure_utc(cls, v):
        return _as_utc(v)

    def to_db_row(self) -> Dict[str, Any]:
        """Flatten into column values for the articles table."""
        return {
            "id": self.id,
            "feed_id": self.feed_id,
            "title": self.title,
            "url": self.url,
            "author": self.author,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "published_at_inferred": int(self.published_at_inferred),
            "snippet": self.snippet,
            "content_text": self.content_text,
            "content_html": self.content_html,
            "read": int(self.read),
            "saved": int(self.saved),
        }

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Article":
        return cls(**dict(row))

    def __str__(self) -> str:
        return f"Article({self.title[:50]}...)"


class ArticleStateUpdate(BaseModel):
    """Change to user-owned article fields. Unset fields are left alone."""
    read: Optional[bool] = None
    saved: Optional[bool] = None

    def is_empty(self) -> bool:
        return self.read is None and self.saved is None


class ArticleContentUpdate(BaseModel):
    """Change to article content fields, e.g. from reader extraction.

    Deliberately has no read/saved fields.
    """
    title: Optional[str] = None
    author: Optional[str] = None
    content_text: Optional[str] = None
    content_html: Optional[str] = None

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in type(self).model_fields)


class NormalizedBatch(BaseModel):
    """Output of normalizing one feed document."""
    feed: Feed
    articles: List[Article] = Field(default_factory=list)


class IngestResult(BaseModel):
    """Result of fetching and normalizing a feed URL."""
    feed: Optional[Feed] = None
    articles: List[Article] = Field(default_factory=list)
    not_modified: bool = False


class DiscoveredFeed(BaseModel):
    """Candidate feed advertised by a web page."""
    title: str
    url: str
    type: str = "rss"


class ReaderExtraction(BaseModel):
    """Readable content extracted from an article page."""
    title: str
    byline: Optional[str] = None
    content_text: str = ""
    content_html: Optional[str] = None


class RefreshStatus(str, Enum):
    """Outcome of one feed within a refresh-all run."""
    REFRESHED = "refreshed"
    NOT_MODIFIED = "not_modified"
    SKIPPED = "skipped"
    FAILED = "failed"


class FeedRefreshOutcome(BaseModel):
    """Per-feed result of a refresh-all run."""
    feed_id: str
    feed_url: str
    status: RefreshStatus
    article_count: int = 0
    new_article_count: int = 0
    error: Optional[str] = None
    error_code: Optional[str] = None
    retryable: bool = False


class RefreshSummary(BaseModel):
    """Aggregate result of a refresh-all run."""
    outcomes: List[FeedRefreshOutcome] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None

    def count(self, status: RefreshStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def failed(self) -> List[FeedRefreshOutcome]:
        return [o for o in self.outcomes if o.status == RefreshStatus.FAILED]

    @property
    def duration_seconds(self) -> float:
        if not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()
