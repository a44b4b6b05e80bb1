"""
Catalog Reconciler
==================

Merges a freshly normalized batch into the persisted catalog.

Records are matched by id. Content fields follow upstream; the user-owned
``read`` and ``saved`` flags always come from the stored record. Articles that
disappear upstream stay in the catalog.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from ..database.models import (
    ARTICLE_CONTENT_FIELDS,
    Article,
    ArticleContentUpdate,
    ArticleStateUpdate,
    Feed,
    NormalizedBatch,
)
from ..storage.catalog_store import CatalogStore
from ..utils.logging import get_logger_for_component
from ..utils.validators import normalize_tags


def _date_key(article: Article):
    if article.published_at is None:
        return (1, 0.0)
    return (0, -article.published_at.timestamp())


def sort_articles(articles: Iterable[Article]) -> List[Article]:
    """Canonical article order: published_at desc, id desc, undated last."""
    by_id = sorted(articles, key=lambda article: article.id, reverse=True)
    return sorted(by_id, key=_date_key)


def merge_article(existing: Optional[Article], incoming: Article) -> Article:
    """Overlay incoming content on an existing article.

    Args:
        existing: Stored record with the same id, if any
        incoming: Freshly normalized record

    Returns:
        Merged record; equal to ``incoming`` when there is no existing record
    """
    if existing is None:
        return incoming

    updates = {name: getattr(incoming, name) for name in ARTICLE_CONTENT_FIELDS}
    updates["published_at_inferred"] = incoming.published_at_inferred

    # An ingestion-time stamp must not move a date we already hold
    if incoming.published_at_inferred:
        updates["published_at"] = existing.published_at
        updates["published_at_inferred"] = existing.published_at_inferred

    updates["read"] = existing.read
    updates["saved"] = existing.saved
    return existing.model_copy(update=updates)


def reconcile_articles(existing: Iterable[Article], incoming: Iterable[Article]) -> List[Article]:
    """Merge an incoming batch into an existing catalog slice.

    Returns:
        The full merged slice (existing articles absent upstream included),
        in canonical order
    """
    merged: Dict[str, Article] = {article.id: article for article in existing}
    for article in incoming:
        merged[article.id] = merge_article(merged.get(article.id), article)
    return sort_articles(merged.values())


def reconcile_feed(
    existing: Optional[Feed],
    incoming: Feed,
    tags: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Feed:
    """Merge a freshly normalized feed with its stored record.

    Caller tags replace stored tags; when the caller passes none, the stored
    tags are kept. ``created_at`` of a known feed never moves; validators come
    from the latest response.
    """
    now = now or datetime.now(timezone.utc)

    if tags is not None:
        feed_tags = normalize_tags(tags)
    elif existing is not None:
        feed_tags = existing.tags
    else:
        feed_tags = incoming.tags

    return incoming.model_copy(
        update={
            "tags": feed_tags,
            "created_at": existing.created_at if existing else incoming.created_at,
            "last_fetched_at": now,
        }
    )


def apply_state(article: Article, update: ArticleStateUpdate) -> Article:
    """Apply a read/saved change. Unset fields are untouched."""
    changes = update.model_dump(exclude_none=True)
    return article.model_copy(update=changes) if changes else article


def apply_content(article: Article, update: ArticleContentUpdate) -> Article:
    """Apply a content change. read/saved cannot be touched this way."""
    changes = update.model_dump(exclude_none=True)
    return article.model_copy(update=changes) if changes else article


class Reconciler:
    """Reconciles batches against the catalog store and writes the result back."""

    def __init__(self, store: CatalogStore):
        self.store = store
        self.logger = get_logger_for_component("reconciler")

    def reconcile_and_persist(
        self,
        existing_slice: Iterable[Article],
        incoming_batch: NormalizedBatch,
        tags: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> List[Article]:
        """Merge a batch into its feed's stored slice and persist it.

        The feed and every incoming article are written as independent
        upserts, so rerunning the same batch converges on the same catalog.

        Args:
            existing_slice: Stored articles of the batch's feed
            incoming_batch: Normalized feed and articles
            tags: Caller-supplied tag set for the feed
            now: Timestamp recorded as last_fetched_at

        Returns:
            Merged full slice in canonical order

        Raises:
            StoreIOError: If a write fails
        """
        now = now or datetime.now(timezone.utc)
        existing_by_id = {article.id: article for article in existing_slice}

        existing_feed = self.store.get("feeds", incoming_batch.feed.id)
        feed = reconcile_feed(existing_feed, incoming_batch.feed, tags, now)
        self.store.put(feed)

        new_count = 0
        for incoming in incoming_batch.articles:
            existing = existing_by_id.get(incoming.id)
            if existing is None:
                # Slice may be partial; the store is authoritative for user state
                existing = self.store.get("articles", incoming.id)
                if existing is None:
                    new_count += 1
            merged = merge_article(existing, incoming)
            existing_by_id[merged.id] = merged
            self.store.put(merged)

        self.logger.info(
            f"Reconciled feed {feed.id}: {len(incoming_batch.articles)} incoming, "
            f"{new_count} new, {len(existing_by_id)} total"
        )
        return sort_articles(existing_by_id.values())

    def mark_not_modified(self, feed: Feed, now: Optional[datetime] = None) -> Feed:
        """Record a 304: only last_fetched_at changes."""
        touched = feed.model_copy(update={"last_fetched_at": now or datetime.now(timezone.utc)})
        self.store.put(touched)
        self.logger.debug(f"Feed {feed.id} not modified")
        return touched

    def apply_state_update(self, article_id: str, update: ArticleStateUpdate) -> Article:
        """Persist a read/saved change.

        Raises:
            NotFoundError: Unknown article id
        """
        article = self.store.require("articles", article_id)
        updated = apply_state(article, update)
        if updated is not article:
            self.store.put(updated)
        return updated

    def apply_content_update(self, article_id: str, update: ArticleContentUpdate) -> Article:
        """Persist a content change such as a reader extraction.

        Raises:
            NotFoundError: Unknown article id
        """
        article = self.store.require("articles", article_id)
        updated = apply_content(article, update)
        if updated is not article:
            self.store.put(updated)
        return updated
