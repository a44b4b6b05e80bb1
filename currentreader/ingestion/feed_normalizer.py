"""
Feed Normalizer
===============

Turns a raw RSS/Atom document into canonical Feed and Article models.

feedparser does the format work (RSS 0.9x/1.0/2.0, Atom, content:encoded,
dc:creator); this module decides identity, dates, text bodies and sanitized
HTML. Normalization is all-or-nothing: a document either yields a complete
batch or raises MalformedDocumentError.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional, Tuple, Union

import feedparser

from ..config.settings import get_settings
from ..database.models import Article, Feed, NormalizedBatch
from ..utils.exceptions import MalformedDocumentError
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator
from .content_cleaner import FEED_POLICY, collapse_whitespace, sanitize, strip_all_markup
from .identity import article_id_for, feed_id_for

RawDocument = Union[bytes, str, feedparser.FeedParserDict]


def _struct_to_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime(*value[:6], tzinfo=timezone.utc)
    except (ValueError, TypeError):
        return None


def _string_to_datetime(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (ValueError, TypeError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _clean(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class FeedNormalizer:
    """Normalize feedparser output into catalog models."""

    def __init__(self, snippet_length: Optional[int] = None, id_length: Optional[int] = None):
        settings = get_settings()
        self.snippet_length = snippet_length or settings.normalizer.snippet_length
        self.id_length = id_length or settings.normalizer.id_length
        self.logger = get_logger_for_component("feed_normalizer")

    def parse(self, document: RawDocument) -> feedparser.FeedParserDict:
        """Parse raw bytes or text with feedparser; parsed input passes through."""
        if isinstance(document, feedparser.FeedParserDict):
            return document
        return feedparser.parse(document)

    def normalize(
        self,
        document: RawDocument,
        source_url: str,
        now: Optional[datetime] = None,
    ) -> NormalizedBatch:
        """Normalize a feed document.

        Args:
            document: Raw document bytes/text or a feedparser result
            source_url: URL the document was fetched from (feed identity)
            now: Ingestion timestamp, defaults to the current UTC time

        Returns:
            NormalizedBatch with the feed and all of its articles

        Raises:
            MalformedDocumentError: The document is not a usable feed
        """
        now = now or datetime.now(timezone.utc)

        try:
            parsed = self.parse(document)
        except Exception as e:
            raise MalformedDocumentError(
                f"Feed could not be parsed: {e}", feed_url=source_url
            ) from e

        self._check_document(parsed, source_url)

        try:
            feed = self._extract_feed(parsed, source_url, now)
            articles = [
                self._extract_article(entry, feed.id, now) for entry in parsed.entries
            ]
        except MalformedDocumentError:
            raise
        except Exception as e:
            raise MalformedDocumentError(
                f"Feed normalization failed: {e}", feed_url=source_url
            ) from e

        if parsed.get("bozo"):
            self.logger.info(
                f"Feed has parse warnings but was normalized: {source_url} "
                f"({parsed.get('bozo_exception')})"
            )

        self.logger.debug(f"Normalized {len(articles)} articles from {source_url}")
        return NormalizedBatch(feed=feed, articles=articles)

    def _check_document(self, parsed: feedparser.FeedParserDict, source_url: str) -> None:
        """Reject documents that carry neither a feed title nor any entries."""
        entries = parsed.get("entries") or []
        title = _clean(parsed.get("feed", {}).get("title"))

        if entries or title:
            return

        if parsed.get("bozo") or not parsed.get("version"):
            reason = parsed.get("bozo_exception") or "not a recognisable RSS/Atom document"
            raise MalformedDocumentError(
                f"Feed parse error: {reason}", feed_url=source_url
            )

    def _extract_feed(
        self, parsed: feedparser.FeedParserDict, source_url: str, now: datetime
    ) -> Feed:
        feed_data = parsed.get("feed", {})
        site_url = _clean(feed_data.get("link")) or URLValidator.origin(source_url)
        title = _clean(feed_data.get("title")) or site_url

        return Feed(
            id=feed_id_for(source_url, self.id_length),
            title=title,
            feed_url=source_url,
            site_url=site_url,
            tags=[],
            created_at=now,
            last_fetched_at=now,
        )

    def extract_published_at(self, entry: Any, now: datetime) -> Tuple[datetime, bool]:
        """Resolve an entry's publish time.

        Order: published_parsed, updated_parsed, then the raw published/updated
        strings as RFC 2822, finally ``now``.

        Returns:
            (timestamp, inferred) where ``inferred`` is True for the ``now`` fallback
        """
        for key in ("published_parsed", "updated_parsed"):
            value = _struct_to_datetime(entry.get(key))
            if value:
                return value, False

        for key in ("published", "updated"):
            value = _string_to_datetime(entry.get(key))
            if value:
                return value, False

        return now, True

    @staticmethod
    def richest_content(entry: Any) -> Optional[str]:
        """Full content (content:encoded / Atom content), then summary/description."""
        for content in entry.get("content") or []:
            value = content.get("value") if hasattr(content, "get") else None
            if _clean(value):
                return value
        return _clean(entry.get("summary"))

    @staticmethod
    def _author(entry: Any) -> Optional[str]:
        # feedparser folds an Atom email into "name (email)"; prefer the bare name
        detail = entry.get("author_detail") or {}
        return _clean(detail.get("name")) or _clean(entry.get("author"))

    def _extract_article(self, entry: Any, feed_id: str, now: datetime) -> Article:
        """Extract and normalize one entry."""
        title = _clean(entry.get("title"))
        link = _clean(entry.get("link"))
        guid = _clean(entry.get("id")) or _clean(entry.get("guid"))
        published_at, inferred = self.extract_published_at(entry, now)

        richest = self.richest_content(entry)
        content_text = strip_all_markup(richest) if richest else ""
        snippet = collapse_whitespace(content_text)[: self.snippet_length]
        content_html = sanitize(richest, FEED_POLICY) if richest else None

        return Article(
            id=article_id_for(
                feed_id,
                guid,
                link,
                title,
                None if inferred else published_at,
                self.id_length,
                content=content_text,
            ),
            feed_id=feed_id,
            title=title or "Untitled",
            url=link or "",
            author=self._author(entry),
            published_at=published_at,
            published_at_inferred=inferred,
            snippet=snippet,
            content_text=content_text,
            content_html=content_html or None,
            read=False,
            saved=False,
        )
