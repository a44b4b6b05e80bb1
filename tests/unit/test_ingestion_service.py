"""
Unit Tests for Ingestion Service
================================

Tests for the request surface over a real catalog and a stubbed HTTP session.
"""

import asyncio
import logging
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from conftest import FEED_URL, SAMPLE_RSS_FEED, make_response, make_session, rss_document
from currentreader.database.models import CacheValidator, ReaderExtraction, RefreshStatus
from currentreader.ingestion.http import ConditionalFetcher
from currentreader.ingestion.identity import article_id_for, feed_id_for
from currentreader.services.ingestion_service import LAST_REFRESH_ALL_KEY, IngestionService
from currentreader.utils.exceptions import (
    ErrorCode,
    MalformedDocumentError,
    NotFoundError,
    ReaderExtractionError,
    RefreshInProgressError,
    ValidationError,
)

OTHER_URL = "https://y.test/feed"
OTHER_FEED = rss_document(
    [("o1", "Other One", "Other body", "Mon, 02 Sep 2024 09:00:00 GMT")],
    title="Other Feed",
    link="https://y.test/",
)

FEED_ID = feed_id_for(FEED_URL)
G1_ID = article_id_for(FEED_ID, "g1")
G2_ID = article_id_for(FEED_ID, "g2")


def ok(body=SAMPLE_RSS_FEED, etag='"v1"'):
    return make_response(body=body, headers={"ETag": etag})


def build_service(store, routes):
    session = make_session(routes)
    service = IngestionService(store, fetcher=ConditionalFetcher(timeout=5), session=session)
    return service, session


class TestAddFeed:
    """Test cases for subscribing to feeds."""

    @pytest.mark.asyncio
    async def test_add_feed_persists_feed_and_articles(self, store):
        service, _ = build_service(store, {FEED_URL: ok()})

        result = await service.add_feed(FEED_URL, tags=["news", " tech "])

        assert result.feed.id == FEED_ID
        assert result.feed.tags == ["news", "tech"]
        assert result.feed.cache_validator.etag == '"v1"'
        assert [a.id for a in result.articles] == [G1_ID, G2_ID]
        assert store.get("feeds", FEED_ID) == result.feed
        assert len(store.list_all("articles")) == 2

    @pytest.mark.asyncio
    async def test_add_invalid_url(self, store):
        service, session = build_service(store, {})

        with pytest.raises(ValidationError):
            await service.add_feed("ftp://x.test/feed")

        session.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_add_malformed_feed_writes_nothing(self, store):
        service, _ = build_service(store, {FEED_URL: ok(body=b"<html><body>nope</body></html>")})

        with pytest.raises(MalformedDocumentError):
            await service.add_feed(FEED_URL)

        assert store.list_all("feeds") == []
        assert not service.locks.is_refreshing(FEED_ID)

    @pytest.mark.asyncio
    async def test_re_adding_without_tags_keeps_tags(self, store):
        service, _ = build_service(store, {FEED_URL: ok()})
        await service.add_feed(FEED_URL, tags=["news"])

        result = await service.add_feed(FEED_URL)

        assert result.feed.tags == ["news"]

    @pytest.mark.asyncio
    async def test_ingest_has_no_side_effects(self, store):
        service, _ = build_service(store, {FEED_URL: ok()})

        result = await service.ingest_or_refresh_feed(FEED_URL)

        assert len(result.articles) == 2
        assert store.list_all("feeds") == []


class TestRefreshFeed:
    """Test cases for single-feed refresh."""

    @pytest.mark.asyncio
    async def test_not_modified_touches_only_timestamp(self, store):
        service, session = build_service(store, {FEED_URL: [ok(), make_response(status=304)]})
        added = await service.add_feed(FEED_URL)
        stale = added.feed.model_copy(
            update={"last_fetched_at": datetime(2024, 1, 1, tzinfo=timezone.utc)}
        )
        store.put(stale)

        result = await service.refresh_feed(FEED_ID)

        assert result.not_modified
        assert [a.id for a in result.articles] == [G1_ID, G2_ID]
        assert session.get.call_args.kwargs["headers"]["If-None-Match"] == '"v1"'
        stored = store.get("feeds", FEED_ID)
        assert stored.cache_validator == CacheValidator(etag='"v1"')
        assert stored.last_fetched_at > stale.last_fetched_at
        assert stored.model_dump(exclude={"last_fetched_at"}) == stale.model_dump(
            exclude={"last_fetched_at"}
        )
        assert store.list_all("articles") == sorted(added.articles, key=lambda a: a.id)

    @pytest.mark.asyncio
    async def test_updated_entry_keeps_user_state(self, store):
        updated = rss_document(
            [
                ("g1", "A updated", "First body", "Thu, 05 Sep 2024 12:00:00 GMT"),
                ("g2", "B", "Second article body", "Wed, 04 Sep 2024 15:30:00 GMT"),
            ]
        )
        service, _ = build_service(store, {FEED_URL: [ok(), ok(body=updated, etag='"v2"')]})
        await service.add_feed(FEED_URL)
        await service.set_article_state(G1_ID, read=True, saved=True)

        result = await service.refresh_feed(FEED_ID)

        assert not result.not_modified
        assert len(store.list_all("articles")) == 2
        g1 = store.get("articles", G1_ID)
        assert g1.title == "A updated"
        assert g1.read and g1.saved
        assert store.get("feeds", FEED_ID).cache_validator.etag == '"v2"'

    @pytest.mark.asyncio
    async def test_unknown_feed(self, store):
        service, _ = build_service(store, {})

        with pytest.raises(NotFoundError):
            await service.refresh_feed("missing")

    @pytest.mark.asyncio
    async def test_concurrent_refresh_rejected(self, store):
        service, _ = build_service(store, {FEED_URL: ok()})
        await service.add_feed(FEED_URL)

        with service.locks.hold(FEED_ID):
            with pytest.raises(RefreshInProgressError):
                await service.refresh_feed(FEED_ID)


class TestRefreshAll:
    """Test cases for refreshing every feed."""

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_siblings(self, store):
        service, _ = build_service(
            store,
            {
                FEED_URL: [ok(), make_response(status=304)],
                OTHER_URL: [ok(body=OTHER_FEED), asyncio.TimeoutError()],
            },
        )
        await service.add_feed(FEED_URL)
        await service.add_feed(OTHER_URL)
        before = store.list_all("articles")

        summary = await service.refresh_all(max_concurrent=2)

        outcomes = {o.feed_url: o for o in summary.outcomes}
        assert outcomes[FEED_URL].status == RefreshStatus.NOT_MODIFIED
        failed = outcomes[OTHER_URL]
        assert failed.status == RefreshStatus.FAILED
        assert failed.error_code == ErrorCode.FEED_FETCH_TIMEOUT.value
        assert failed.retryable
        assert summary.failed == [failed]
        assert store.list_all("articles") == before
        assert store.get_metadata(LAST_REFRESH_ALL_KEY) == summary.finished_at.isoformat()

    @pytest.mark.asyncio
    async def test_counts_new_articles(self, store):
        grown = rss_document(
            [
                ("g0", "Newest", "Brand new", "Fri, 06 Sep 2024 08:00:00 GMT"),
                ("g1", "A", "First body", "Thu, 05 Sep 2024 12:00:00 GMT"),
            ]
        )
        service, _ = build_service(store, {FEED_URL: [ok(), ok(body=grown)]})
        await service.add_feed(FEED_URL)

        summary = await service.refresh_all()

        outcome = summary.outcomes[0]
        assert outcome.status == RefreshStatus.REFRESHED
        assert outcome.article_count == 3
        assert outcome.new_article_count == 1

    @pytest.mark.asyncio
    async def test_gone_feed_is_not_retryable(self, store):
        service, _ = build_service(store, {FEED_URL: [ok(), make_response(status=404)]})
        await service.add_feed(FEED_URL)

        summary = await service.refresh_all()

        outcome = summary.outcomes[0]
        assert outcome.status == RefreshStatus.FAILED
        assert outcome.error_code == ErrorCode.FEED_NOT_FOUND.value
        assert not outcome.retryable

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failed_outcome(self, store):
        service, _ = build_service(
            store, {FEED_URL: ok(), OTHER_URL: [ok(body=OTHER_FEED), make_response(status=304)]}
        )
        await service.add_feed(FEED_URL)
        await service.add_feed(OTHER_URL)
        real_normalize = service.normalizer.normalize

        def normalize(document, source_url, now=None):
            if source_url == FEED_URL:
                raise ValueError("boom")
            return real_normalize(document, source_url, now=now)

        service.normalizer.normalize = MagicMock(side_effect=normalize)

        summary = await service.refresh_all()

        outcomes = {o.feed_url: o for o in summary.outcomes}
        failed = outcomes[FEED_URL]
        assert failed.status == RefreshStatus.FAILED
        assert failed.error == "An unexpected error occurred"
        assert failed.error_code is None
        assert not failed.retryable
        assert outcomes[OTHER_URL].status == RefreshStatus.NOT_MODIFIED

    @pytest.mark.asyncio
    async def test_logs_duration(self, store, caplog):
        service, _ = build_service(store, {})
        caplog.set_level(logging.INFO, logger="currentreader")

        await service.refresh_all()

        assert "Completed refresh_all" in caplog.text

    @pytest.mark.asyncio
    async def test_busy_feed_is_skipped(self, store):
        service, session = build_service(store, {FEED_URL: ok()})
        await service.add_feed(FEED_URL)
        calls = session.get.call_count

        with service.locks.hold(FEED_ID):
            summary = await service.refresh_all()

        assert summary.count(RefreshStatus.SKIPPED) == 1
        assert session.get.call_count == calls

    @pytest.mark.asyncio
    async def test_no_feeds(self, store):
        service, _ = build_service(store, {})

        summary = await service.refresh_all()

        assert summary.outcomes == []
        assert summary.finished_at is not None


class TestCatalogQueries:
    """Test cases for listing, searching and article state."""

    @pytest_asyncio.fixture
    async def service(self, store):
        service, _ = build_service(
            store, {FEED_URL: ok(), OTHER_URL: ok(body=OTHER_FEED)}
        )
        await service.add_feed(FEED_URL, tags=["news"])
        await service.add_feed(OTHER_URL, tags=["misc"])
        return service

    @pytest.mark.asyncio
    async def test_list_feeds_and_tags(self, service):
        feeds = await service.list_feeds()
        assert [f.title for f in feeds] == ["Example Feed", "Other Feed"]
        assert await service.list_tags() == ["misc", "news"]

    @pytest.mark.asyncio
    async def test_list_articles_in_date_order(self, service):
        articles = await service.list_articles()
        assert [a.title for a in articles] == ["A", "B", "Other One"]

    @pytest.mark.asyncio
    async def test_list_articles_filters(self, service):
        assert len(await service.list_articles(feed_id=FEED_ID)) == 2
        assert [a.title for a in await service.list_articles(tag="misc")] == ["Other One"]

        await service.toggle_saved(G2_ID)
        assert [a.id for a in await service.list_articles(saved=True)] == [G2_ID]
        assert len(await service.list_articles(saved=False)) == 2

    @pytest.mark.asyncio
    async def test_search(self, service):
        results = await service.search_articles("second article")
        assert [a.id for a in results] == [G2_ID]

        with pytest.raises(ValidationError):
            await service.search_articles("   ")

    @pytest.mark.asyncio
    async def test_toggle_read(self, service):
        assert (await service.toggle_read(G1_ID)).read
        assert not (await service.toggle_read(G1_ID)).read
        assert (await service.toggle_read(G1_ID, force=True)).read
        assert (await service.toggle_read(G1_ID, force=True)).read

    @pytest.mark.asyncio
    async def test_set_state_unknown_article(self, service):
        with pytest.raises(NotFoundError):
            await service.set_article_state("missing", read=True)

    @pytest.mark.asyncio
    async def test_delete_feed(self, service, store):
        await service.delete_feed(FEED_ID)

        assert [f.feed_url for f in await service.list_feeds()] == [OTHER_URL]
        assert store.get("articles", G1_ID) is None

        with pytest.raises(NotFoundError):
            await service.delete_feed(FEED_ID)


class TestReaderView:
    """Test cases for load_reader_view."""

    @pytest_asyncio.fixture
    async def service(self, store):
        service, _ = build_service(store, {FEED_URL: ok()})
        await service.add_feed(FEED_URL)
        return service

    @pytest.mark.asyncio
    async def test_fills_short_article(self, service):
        service.extractor.extract = AsyncMock(
            return_value=ReaderExtraction(
                title="A",
                byline="Ada Lovelace",
                content_text="The full article text.",
                content_html="<p>The full article text.</p>",
            )
        )

        article = await service.load_reader_view(G1_ID)

        service.extractor.extract.assert_awaited_once()
        assert service.extractor.extract.call_args.args[0] == "https://x.test/posts/g1"
        assert article.content_text == "The full article text."
        assert article.content_html == "<p>The full article text.</p>"
        assert article.author == "Ada Lovelace"
        assert article.snippet == "First article body"

    @pytest.mark.asyncio
    async def test_extraction_failure_returns_stored_article(self, service):
        service.extractor.extract = AsyncMock(
            side_effect=ReaderExtractionError("boom", url="https://x.test/posts/g1")
        )
        before = await service.get_article(G1_ID)

        article = await service.load_reader_view(G1_ID)

        assert article == before

    @pytest.mark.asyncio
    async def test_long_article_not_fetched(self, service, store):
        stored = store.get("articles", G1_ID)
        store.put(stored.model_copy(update={"content_text": "x" * 500}))
        service.extractor.extract = AsyncMock()

        await service.load_reader_view(G1_ID)

        service.extractor.extract.assert_not_called()
