"""
Ingestion Service
=================

Request surface of the reader: subscribing to feeds, refreshing them,
reconciling results into the catalog and changing user article state.
Used by the CLI and by any scheduler that drives refreshes.

Features:
- Feed discovery from a site address
- Fetch + normalize without side effects (ingest_or_refresh_feed)
- Per-feed refresh with conditional GET and a 304 short-circuit
- Bounded concurrent refresh of every feed with per-feed outcomes
- Reader view extraction with graceful fallback
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import aiohttp

from ..config.settings import get_settings
from ..database.connection import DatabaseConnection
from ..database.models import (
    Article,
    ArticleContentUpdate,
    ArticleStateUpdate,
    CacheValidator,
    DiscoveredFeed,
    Feed,
    FeedRefreshOutcome,
    IngestResult,
    NormalizedBatch,
    RefreshStatus,
    RefreshSummary,
)
from ..ingestion.feed_discovery import FeedDiscovery
from ..ingestion.feed_normalizer import FeedNormalizer
from ..ingestion.http import ConditionalFetcher
from ..ingestion.identity import feed_id_for
from ..ingestion.reader_extractor import ReaderExtractor
from ..processing.reconciler import Reconciler, sort_articles
from ..processing.refresh_lock import FeedRefreshLock
from ..storage.catalog_store import CatalogStore
from ..utils.exceptions import (
    CurrentReaderError,
    RefreshInProgressError,
    StoreIOError,
    handle_exception,
    is_retryable_error,
)
from ..utils.logging import PerformanceLogger, get_logger_for_component
from ..utils.validators import URLValidator, normalize_tags, validate_search_query

LAST_REFRESH_ALL_KEY = "last_refresh_all_at"


class IngestionService:
    """Feed ingestion and catalog operations shared by every interface."""

    def __init__(
        self,
        store: CatalogStore,
        fetcher: Optional[ConditionalFetcher] = None,
        normalizer: Optional[FeedNormalizer] = None,
        reconciler: Optional[Reconciler] = None,
        discovery: Optional[FeedDiscovery] = None,
        extractor: Optional[ReaderExtractor] = None,
        locks: Optional[FeedRefreshLock] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the ingestion service.

        Args:
            store: Catalog store
            fetcher: HTTP fetcher (default built from settings)
            normalizer: Feed normalizer (default built from settings)
            reconciler: Reconciler over ``store``
            discovery: Feed discovery helper
            extractor: Reader extractor
            locks: Refresh lease table shared by all callers of this service
            session: Externally owned HTTP session; a fresh one is opened per
                operation when omitted
        """
        self.settings = get_settings()
        self.store = store
        self.fetcher = fetcher or ConditionalFetcher()
        self.normalizer = normalizer or FeedNormalizer()
        self.reconciler = reconciler or Reconciler(store)
        self.discovery = discovery or FeedDiscovery(self.fetcher)
        self.extractor = extractor or ReaderExtractor(self.fetcher)
        self.locks = locks or FeedRefreshLock()
        self._session = session
        self.logger = get_logger_for_component("ingestion_service")

    @classmethod
    def from_db_connection(cls, db_connection: DatabaseConnection) -> "IngestionService":
        """Build a service with default collaborators over a database."""
        return cls(CatalogStore(db_connection))

    @asynccontextmanager
    async def session(self):
        """Yield the injected session, or open one for the duration of a call."""
        if self._session is not None:
            yield self._session
            return
        async with self.fetcher.get_session() as session:
            yield session

    # Request surface

    async def discover_feeds(self, site_url: str) -> List[DiscoveredFeed]:
        """List the feeds advertised by a site's page."""
        site_url = URLValidator.validate_feed_url(site_url)
        async with self.session() as session:
            return await self.discovery.discover(site_url, session)

    async def ingest_or_refresh_feed(
        self,
        url: str,
        validators: Optional[CacheValidator] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> IngestResult:
        """Fetch and normalize a feed without writing anything.

        Args:
            url: Feed URL
            validators: Cache validators from the previous fetch
            session: Session to reuse; one is opened when omitted

        Returns:
            IngestResult; ``not_modified`` with no feed/articles on a 304

        Raises:
            FeedTimeoutError, UpstreamError, FeedNetworkError, MalformedDocumentError
        """
        if session is None:
            async with self.session() as own_session:
                return await self.ingest_or_refresh_feed(url, validators, own_session)

        response = await self.fetcher.fetch(url, session, validators=validators)
        if response.not_modified:
            return IngestResult(not_modified=True)

        batch = self.normalizer.normalize(response.body, url, now=response.fetch_time)
        feed = batch.feed.model_copy(update={"cache_validator": response.validators})
        return IngestResult(feed=feed, articles=batch.articles, not_modified=False)

    async def reconcile_and_persist(
        self,
        existing_slice: Iterable[Article],
        incoming_batch: NormalizedBatch,
        tags: Optional[Iterable[str]] = None,
    ) -> List[Article]:
        """Merge a batch into the catalog and return the merged feed slice."""
        return self.reconciler.reconcile_and_persist(existing_slice, incoming_batch, tags=tags)

    # Feed operations

    async def add_feed(self, url: str, tags: Optional[Iterable[str]] = None) -> IngestResult:
        """Subscribe to a feed, or reconcile it again if already subscribed.

        Returns:
            IngestResult with the stored feed and its merged article slice

        Raises:
            ValidationError: Invalid URL
            RefreshInProgressError: The feed is being refreshed right now
            FeedTimeoutError, UpstreamError, FeedNetworkError, MalformedDocumentError
        """
        url = URLValidator.validate_feed_url(url)
        feed_id = feed_id_for(url, self.normalizer.id_length)

        with self.locks.hold(feed_id):
            result = await self.ingest_or_refresh_feed(url)
            existing_slice = self.store.list_by_index("articles", "by-feed", feed_id)
            merged = await self.reconcile_and_persist(
                existing_slice,
                NormalizedBatch(feed=result.feed, articles=result.articles),
                tags=normalize_tags(tags) if tags is not None else None,
            )

        feed = self.store.get("feeds", feed_id)
        self.logger.info(f"Added feed {feed.title} ({feed_id}) with {len(merged)} articles")
        return IngestResult(feed=feed, articles=merged)

    async def refresh_feed(
        self, feed_id: str, session: Optional[aiohttp.ClientSession] = None
    ) -> IngestResult:
        """Refresh one stored feed.

        Returns:
            IngestResult with the updated feed and merged slice; on a 304,
            ``not_modified`` with the unchanged stored slice

        Raises:
            NotFoundError: Unknown feed id
            RefreshInProgressError: The feed is already being refreshed
            FeedTimeoutError, UpstreamError, FeedNetworkError, MalformedDocumentError
        """
        feed = self.store.require("feeds", feed_id)

        with self.locks.hold(feed_id):
            result = await self.ingest_or_refresh_feed(
                feed.feed_url, feed.cache_validator, session=session
            )
            existing_slice = self.store.list_by_index("articles", "by-feed", feed_id)

            if result.not_modified:
                touched = self.reconciler.mark_not_modified(feed)
                return IngestResult(
                    feed=touched, articles=sort_articles(existing_slice), not_modified=True
                )

            merged = await self.reconcile_and_persist(
                existing_slice,
                NormalizedBatch(feed=result.feed, articles=result.articles),
                tags=feed.tags,
            )

        return IngestResult(feed=self.store.get("feeds", feed_id), articles=merged)

    async def _refresh_outcome(
        self, feed: Feed, session: aiohttp.ClientSession, semaphore: asyncio.Semaphore
    ) -> FeedRefreshOutcome:
        """Refresh one feed and describe the result instead of raising."""
        async with semaphore:
            before = len(self.store.list_by_index("articles", "by-feed", feed.id))
            try:
                result = await self.refresh_feed(feed.id, session=session)
            except RefreshInProgressError:
                return FeedRefreshOutcome(
                    feed_id=feed.id, feed_url=feed.feed_url, status=RefreshStatus.SKIPPED
                )
            except StoreIOError:
                raise
            except Exception as e:
                error = handle_exception(
                    e, self.logger, "refresh_feed", {"feed_id": feed.id, "feed_url": feed.feed_url}
                )
                return FeedRefreshOutcome(
                    feed_id=feed.id,
                    feed_url=feed.feed_url,
                    status=RefreshStatus.FAILED,
                    error=error.user_message,
                    error_code=error.error_code.value if error.error_code else None,
                    retryable=is_retryable_error(error),
                )

        status = RefreshStatus.NOT_MODIFIED if result.not_modified else RefreshStatus.REFRESHED
        return FeedRefreshOutcome(
            feed_id=feed.id,
            feed_url=feed.feed_url,
            status=status,
            article_count=len(result.articles),
            new_article_count=max(len(result.articles) - before, 0),
        )

    async def refresh_all(self, max_concurrent: Optional[int] = None) -> RefreshSummary:
        """Refresh every stored feed with bounded concurrency.

        A failing feed is reported in its outcome and never stops its siblings.
        """
        max_concurrent = max_concurrent or self.settings.fetch.max_concurrent_refreshes
        feeds = self.store.list_all("feeds")
        summary = RefreshSummary()

        with PerformanceLogger(self.logger, "refresh_all", feeds=len(feeds)):
            if feeds:
                semaphore = asyncio.Semaphore(max_concurrent)
                async with self.session() as session:
                    summary.outcomes = list(
                        await asyncio.gather(
                            *(self._refresh_outcome(feed, session, semaphore) for feed in feeds)
                        )
                    )

        summary.finished_at = datetime.now(timezone.utc)
        self.store.set_metadata(LAST_REFRESH_ALL_KEY, summary.finished_at.isoformat())

        self.logger.info(
            f"Refreshed {len(feeds)} feeds in {summary.duration_seconds:.2f}s: "
            f"{summary.count(RefreshStatus.REFRESHED)} refreshed, "
            f"{summary.count(RefreshStatus.NOT_MODIFIED)} not modified, "
            f"{summary.count(RefreshStatus.SKIPPED)} skipped, "
            f"{summary.count(RefreshStatus.FAILED)} failed"
        )
        return summary

    async def delete_feed(self, feed_id: str) -> None:
        """Unsubscribe from a feed and drop its articles.

        Raises:
            NotFoundError: Unknown feed id
        """
        self.store.require("feeds", feed_id)
        self.store.delete("feeds", feed_id)
        self.logger.info(f"Deleted feed {feed_id}")

    async def list_feeds(self) -> List[Feed]:
        return sorted(self.store.list_all("feeds"), key=lambda feed: feed.title.lower())

    async def list_tags(self) -> List[str]:
        """Union of all feed tags, sorted."""
        tags = set()
        for feed in self.store.list_all("feeds"):
            tags.update(feed.tags)
        return sorted(tags)

    async def list_articles(
        self,
        feed_id: Optional[str] = None,
        saved: Optional[bool] = None,
        tag: Optional[str] = None,
    ) -> List[Article]:
        """Articles in canonical order, optionally filtered."""
        if feed_id:
            articles = self.store.list_by_index("articles", "by-feed", feed_id)
        elif saved:
            articles = self.store.list_by_index("articles", "by-saved", True)
        else:
            articles = self.store.list_all("articles")

        if saved is not None:
            articles = [article for article in articles if article.saved == saved]

        if tag:
            tagged_feeds = {
                feed.id for feed in self.store.list_all("feeds") if tag in feed.tags
            }
            articles = [article for article in articles if article.feed_id in tagged_feeds]

        return sort_articles(articles)

    async def search_articles(self, query: str) -> List[Article]:
        """Substring search over stored articles (no ranking)."""
        query = validate_search_query(query)
        return sort_articles(self.store.search_articles(query))

    # Article operations

    async def get_article(self, article_id: str) -> Article:
        return self.store.require("articles", article_id)

    async def load_reader_view(self, article_id: str) -> Article:
        """Fill an article's body from its web page.

        Skipped when the article already has a substantial body or has no URL.
        Extraction failures are logged and the stored article is returned.

        Raises:
            NotFoundError: Unknown article id
        """
        article = self.store.require("articles", article_id)

        if not article.url:
            return article
        if article.content_text and len(article.content_text) > self.settings.reader.min_content_length:
            return article

        try:
            async with self.session() as session:
                extraction = await self.extractor.extract(article.url, session)
        except CurrentReaderError as e:
            self.logger.warning(f"Reader view unavailable for {article.url}: {e}")
            return article

        return self.reconciler.apply_content_update(
            article_id,
            ArticleContentUpdate(
                content_text=extraction.content_text,
                content_html=extraction.content_html,
                author=None if article.author else extraction.byline,
            ),
        )

    async def set_article_state(
        self, article_id: str, read: Optional[bool] = None, saved: Optional[bool] = None
    ) -> Article:
        """Set read and/or saved. Unset arguments are left alone."""
        return self.reconciler.apply_state_update(
            article_id, ArticleStateUpdate(read=read, saved=saved)
        )

    async def toggle_read(self, article_id: str, force: Optional[bool] = None) -> Article:
        """Flip the read flag, or set it to ``force`` when given."""
        article = self.store.require("articles", article_id)
        value = (not article.read) if force is None else force
        return await self.set_article_state(article_id, read=value)

    async def toggle_saved(self, article_id: str) -> Article:
        article = self.store.require("articles", article_id)
        return await self.set_article_state(article_id, saved=not article.saved)
