"""
Feed Discovery
==============

Finds the RSS/Atom feeds a web page advertises, so a user can subscribe by
site address instead of hunting for the feed URL.
"""

from typing import Iterable, List
from urllib.parse import urljoin

import aiohttp
from bs4 import BeautifulSoup

from ..database.models import DiscoveredFeed
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator
from .content_cleaner import PARSER
from .http import ConditionalFetcher, HTML_ACCEPT

FEED_TYPES = (
    "application/rss+xml",
    "application/atom+xml",
    "application/xml",
    "text/xml",
)

MAX_ANCHOR_CANDIDATES = 5


def _rel_values(element) -> List[str]:
    rel = element.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return [value.lower() for value in rel]


def dedupe_feeds(feeds: Iterable[DiscoveredFeed]) -> List[DiscoveredFeed]:
    """Drop repeated URLs, keeping the first occurrence."""
    seen = {}
    for feed in feeds:
        if feed.url not in seen:
            seen[feed.url] = feed
    return list(seen.values())


def find_feed_links(html: str, page_url: str) -> List[DiscoveredFeed]:
    """Extract candidate feeds from a page's markup.

    ``<link rel="alternate">`` elements with a feed media type are preferred.
    When a page has none, up to five anchors whose target looks like a feed
    file are returned instead.

    Args:
        html: Page markup
        page_url: URL the page was fetched from, for resolving relative links

    Returns:
        De-duplicated list of discovered feeds
    """
    soup = BeautifulSoup(html, PARSER)

    feeds = []
    for link in soup.find_all("link", href=True):
        if "alternate" not in _rel_values(link):
            continue
        link_type = (link.get("type") or "").strip()
        if not link_type or not any(t in link_type.lower() for t in FEED_TYPES):
            continue
        url = urljoin(page_url, link["href"].strip())
        feeds.append(
            DiscoveredFeed(
                title=(link.get("title") or "").strip() or url,
                url=url,
                type=link_type or "rss",
            )
        )

    if feeds:
        return dedupe_feeds(feeds)

    anchors = []
    for anchor in soup.find_all("a", href=True):
        url = urljoin(page_url, anchor["href"].strip())
        if URLValidator.is_likely_feed_url(url):
            anchors.append(DiscoveredFeed(title=url, url=url, type="rss"))
        if len(anchors) >= MAX_ANCHOR_CANDIDATES:
            break

    return dedupe_feeds(anchors)


class FeedDiscovery:
    """Fetch a site page and list the feeds it links to."""

    def __init__(self, fetcher: ConditionalFetcher):
        self.fetcher = fetcher
        self.logger = get_logger_for_component("feed_discovery")

    async def discover(
        self, site_url: str, session: aiohttp.ClientSession
    ) -> List[DiscoveredFeed]:
        """Discover feeds advertised by ``site_url``.

        Raises:
            FeedTimeoutError, UpstreamError, FeedNetworkError: Page fetch failed
        """
        html = await self.fetcher.fetch_document(site_url, session, accept=HTML_ACCEPT)
        feeds = find_feed_links(html, site_url)
        self.logger.info(f"Discovered {len(feeds)} feeds on {site_url}")
        return feeds
