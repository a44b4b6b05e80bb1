"""
Unit Tests for Feed Discovery
=============================
"""

import pytest

from conftest import make_response, make_session
from currentreader.ingestion.feed_discovery import (
    MAX_ANCHOR_CANDIDATES,
    FeedDiscovery,
    find_feed_links,
)
from currentreader.ingestion.http import ConditionalFetcher
from currentreader.utils.exceptions import UpstreamError

PAGE_URL = "https://blog.x.test/about/"

ADVERTISED_PAGE = """
<html><head>
  <title>Blog</title>
  <link rel="alternate" type="application/rss+xml" title="Posts" href="/feed.xml">
  <link rel="alternate" type="application/atom+xml" href="https://blog.x.test/atom">
  <link rel="alternate" type="application/rss+xml" title="Posts again" href="https://blog.x.test/feed.xml">
  <link rel="alternate" hreflang="fr" href="/fr/">
  <link rel="stylesheet" type="text/css" href="/style.css">
</head><body><a href="/other.rss">Other</a></body></html>
"""


class TestFindFeedLinks:
    """Test cases for find_feed_links."""

    def test_alternate_links(self):
        feeds = find_feed_links(ADVERTISED_PAGE, PAGE_URL)

        assert [f.url for f in feeds] == [
            "https://blog.x.test/feed.xml",
            "https://blog.x.test/atom",
        ]
        assert feeds[0].title == "Posts"
        assert feeds[0].type == "application/rss+xml"
        assert feeds[1].title == "https://blog.x.test/atom"
        assert feeds[1].type == "application/atom+xml"

    def test_anchor_fallback(self):
        html = """
        <html><body>
          <a href="/feeds/all.atom">All</a>
          <a href="posts.rss">Posts</a>
          <a href="/about">About</a>
          <a href="/feeds/all.atom">All again</a>
        </body></html>
        """
        feeds = find_feed_links(html, PAGE_URL)

        assert [f.url for f in feeds] == [
            "https://blog.x.test/feeds/all.atom",
            "https://blog.x.test/about/posts.rss",
        ]

    def test_anchor_fallback_is_capped(self):
        anchors = "".join(f'<a href="/f{i}.xml">{i}</a>' for i in range(10))
        feeds = find_feed_links(f"<body>{anchors}</body>", PAGE_URL)

        assert len(feeds) == MAX_ANCHOR_CANDIDATES

    def test_no_feeds(self):
        assert find_feed_links("<html><body><p>Nothing here</p></body></html>", PAGE_URL) == []


class TestFeedDiscovery:
    """Test cases for FeedDiscovery."""

    @pytest.mark.asyncio
    async def test_discover(self):
        session = make_session({PAGE_URL: make_response(text=ADVERTISED_PAGE)})
        discovery = FeedDiscovery(ConditionalFetcher(timeout=5))

        feeds = await discovery.discover(PAGE_URL, session)

        assert len(feeds) == 2
        assert "text/html" in session.get.call_args.kwargs["headers"]["Accept"]

    @pytest.mark.asyncio
    async def test_discover_page_error(self):
        session = make_session({PAGE_URL: make_response(status=404)})
        discovery = FeedDiscovery(ConditionalFetcher(timeout=5))

        with pytest.raises(UpstreamError):
            await discovery.discover(PAGE_URL, session)
