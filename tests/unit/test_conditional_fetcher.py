"""
Unit Tests for Conditional Fetcher
==================================

Tests for validator headers, the 304 short-circuit and error mapping.
"""

import asyncio

import aiohttp
import pytest

from conftest import FEED_URL, SAMPLE_RSS_FEED, make_response, make_session
from currentreader.database.models import CacheValidator
from currentreader.ingestion.http import (
    ConditionalFetcher,
    FetchStatus,
    build_conditional_headers,
)
from currentreader.utils.exceptions import (
    ErrorCode,
    FeedNetworkError,
    FeedTimeoutError,
    UpstreamError,
    is_retryable_error,
)


class TestConditionalHeaders:
    """Test cases for build_conditional_headers."""

    def test_no_validators(self):
        assert build_conditional_headers(None) == {}
        assert build_conditional_headers(CacheValidator()) == {}

    def test_both_validators(self):
        headers = build_conditional_headers(
            CacheValidator(etag='"v1"', last_modified="Thu, 05 Sep 2024 12:00:00 GMT")
        )
        assert headers == {
            "If-None-Match": '"v1"',
            "If-Modified-Since": "Thu, 05 Sep 2024 12:00:00 GMT",
        }


class TestConditionalFetcher:
    """Test cases for ConditionalFetcher."""

    def setup_method(self):
        self.fetcher = ConditionalFetcher(timeout=5)

    @pytest.mark.asyncio
    async def test_ok_response_captures_validators(self):
        session = make_session({
            FEED_URL: make_response(
                body=SAMPLE_RSS_FEED,
                headers={"ETag": '"v2"', "Last-Modified": "Fri, 06 Sep 2024 00:00:00 GMT"},
            )
        })

        response = await self.fetcher.fetch(FEED_URL, session)

        assert response.status == FetchStatus.OK
        assert response.status_code == 200
        assert response.body == SAMPLE_RSS_FEED
        assert response.validators.etag == '"v2"'
        assert response.validators.last_modified == "Fri, 06 Sep 2024 00:00:00 GMT"
        assert not response.not_modified

    @pytest.mark.asyncio
    async def test_ok_response_without_validators(self):
        session = make_session({FEED_URL: make_response(body=SAMPLE_RSS_FEED)})

        response = await self.fetcher.fetch(
            FEED_URL, session, validators=CacheValidator(etag='"old"')
        )

        assert response.validators.is_empty()

    @pytest.mark.asyncio
    async def test_sends_conditional_headers(self):
        session = make_session({FEED_URL: make_response(status=304)})

        await self.fetcher.fetch(
            FEED_URL,
            session,
            validators=CacheValidator(etag='"v1"', last_modified="Thu, 05 Sep 2024 12:00:00 GMT"),
        )

        kwargs = session.get.call_args.kwargs
        assert kwargs["headers"]["If-None-Match"] == '"v1"'
        assert kwargs["headers"]["If-Modified-Since"] == "Thu, 05 Sep 2024 12:00:00 GMT"
        assert kwargs["timeout"].total == 5

    @pytest.mark.asyncio
    async def test_not_modified_has_no_body(self):
        validators = CacheValidator(etag='"v1"')
        session = make_session({FEED_URL: make_response(status=304)})

        response = await self.fetcher.fetch(FEED_URL, session, validators=validators)

        assert response.not_modified
        assert response.body is None
        assert response.validators == validators

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self):
        session = make_session({FEED_URL: make_response(status=503)})

        with pytest.raises(UpstreamError) as exc_info:
            await self.fetcher.fetch(FEED_URL, session)

        assert exc_info.value.status_code == 503
        assert exc_info.value.recoverable
        assert is_retryable_error(exc_info.value)

    @pytest.mark.asyncio
    async def test_client_error_is_not_retryable(self):
        session = make_session({FEED_URL: make_response(status=404)})

        with pytest.raises(UpstreamError) as exc_info:
            await self.fetcher.fetch(FEED_URL, session)

        assert exc_info.value.status_code == 404
        assert exc_info.value.error_code == ErrorCode.FEED_NOT_FOUND
        assert not is_retryable_error(exc_info.value)

    @pytest.mark.asyncio
    async def test_rate_limited_is_retryable(self):
        session = make_session({FEED_URL: make_response(status=429)})

        with pytest.raises(UpstreamError) as exc_info:
            await self.fetcher.fetch(FEED_URL, session)

        assert is_retryable_error(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self):
        session = make_session({FEED_URL: asyncio.TimeoutError()})

        with pytest.raises(FeedTimeoutError) as exc_info:
            await self.fetcher.fetch(FEED_URL, session, timeout=2)

        assert exc_info.value.feed_url == FEED_URL
        assert exc_info.value.timeout == 2
        assert exc_info.value.error_code == ErrorCode.FEED_FETCH_TIMEOUT

    @pytest.mark.asyncio
    async def test_connection_error(self):
        session = make_session({FEED_URL: aiohttp.ClientConnectionError("refused")})

        with pytest.raises(FeedNetworkError) as exc_info:
            await self.fetcher.fetch(FEED_URL, session)

        assert exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_fetch_document_returns_text(self):
        page_url = "https://x.test/"
        session = make_session({page_url: make_response(text="<html>page</html>")})

        html = await self.fetcher.fetch_document(page_url, session)

        assert html == "<html>page</html>"
        assert session.get.call_args.kwargs["headers"]["Accept"].startswith("text/html")

    @pytest.mark.asyncio
    async def test_fetch_document_error_status(self):
        page_url = "https://x.test/"
        session = make_session({page_url: make_response(status=500)})

        with pytest.raises(UpstreamError):
            await self.fetcher.fetch_document(page_url, session)

    @pytest.mark.asyncio
    async def test_session_default_headers(self, fresh_settings):
        async with self.fetcher.get_session() as session:
            assert session.headers["User-Agent"] == fresh_settings.fetch.user_agent
            assert "application/rss+xml" in session.headers["Accept"]
