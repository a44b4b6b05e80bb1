"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for CurrentReader tests.

- Per-test SQLite catalog in a temporary directory
- Sample RSS/Atom documents
- aiohttp session doubles that serve canned responses per URL
"""

import os
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
_TEST_DIR = Path(tempfile.gettempdir()) / "currentreader_tests"
os.environ["CURRENTREADER_DATABASE__PATH"] = str(_TEST_DIR / "currentreader_test.db")
os.environ["CURRENTREADER_LOGGING__FILE_PATH"] = ""
os.environ["CURRENTREADER_LOGGING__CONSOLE_LOGGING"] = "false"
os.environ["CURRENTREADER_FETCH__TIMEOUT_SECONDS"] = "5"


FEED_URL = "https://x.test/feed"


def rss_document(items, title="Example Feed", link="https://x.test/"):
    """Build an RSS 2.0 document from ``(guid, title, description, pub_date)`` tuples."""
    entries = []
    for guid, item_title, description, pub_date in items:
        parts = [f"<guid>{guid}</guid>", f"<title>{item_title}</title>"]
        parts.append(f"<link>https://x.test/posts/{guid}</link>")
        if description is not None:
            parts.append(f"<description><![CDATA[{description}]]></description>")
        if pub_date:
            parts.append(f"<pubDate>{pub_date}</pubDate>")
        entries.append("<item>" + "".join(parts) + "</item>")

    link_tag = f"<link>{link}</link>" if link else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"<title>{title}</title>{link_tag}<description>Test feed</description>"
        + "".join(entries)
        + "</channel></rss>"
    ).encode("utf-8")


SAMPLE_RSS_FEED = rss_document(
    [
        ("g1", "A", "<p>First <strong>article</strong> body</p>", "Thu, 05 Sep 2024 12:00:00 GMT"),
        ("g2", "B", "Second article body", "Wed, 04 Sep 2024 15:30:00 GMT"),
    ]
)


def make_response(status=200, body=b"", headers=None, text=None):
    """aiohttp response double."""
    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.read = AsyncMock(return_value=body)
    response.text = AsyncMock(
        return_value=text if text is not None else body.decode("utf-8", "replace")
    )
    return response


def make_session(routes):
    """aiohttp session double.

    ``routes`` maps URL to a response, an exception instance (raised when the
    request is entered), or a list of those served in order.
    """
    session = MagicMock()

    def get(url, **kwargs):
        route = routes[url]
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]

        context_manager = MagicMock()
        if isinstance(route, BaseException):
            context_manager.__aenter__ = AsyncMock(side_effect=route)
        else:
            context_manager.__aenter__ = AsyncMock(return_value=route)
        context_manager.__aexit__ = AsyncMock(return_value=False)
        return context_manager

    session.get = MagicMock(side_effect=get)
    return session


# ============================================================================
# Settings and Database Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def fresh_settings():
    """Reload settings so each test sees the test environment."""
    from currentreader.config.settings import get_settings

    yield get_settings(reload=True)


@pytest.fixture
def db_path(tmp_path):
    """Temporary database file with the catalog schema."""
    from currentreader.database.schema import DatabaseSchema

    path = tmp_path / "catalog.db"
    DatabaseSchema(str(path)).create_tables()
    return str(path)


@pytest.fixture
def db_connection(db_path):
    """Create a database connection manager for testing."""
    from currentreader.database.connection import DatabaseConnection

    connection = DatabaseConnection(db_path, pool_size=2)
    yield connection

    connection.close_all_connections()


@pytest.fixture
def store(db_connection):
    from currentreader.storage.catalog_store import CatalogStore

    return CatalogStore(db_connection)


@pytest.fixture
def now():
    return datetime(2024, 9, 10, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_feed(now):
    from currentreader.database.models import CacheValidator, Feed
    from currentreader.ingestion.identity import feed_id_for

    return Feed(
        id=feed_id_for(FEED_URL),
        title="Example Feed",
        feed_url=FEED_URL,
        site_url="https://x.test/",
        tags=["news"],
        created_at=now,
        last_fetched_at=now,
        cache_validator=CacheValidator(etag='"v1"'),
    )


@pytest.fixture
def sample_articles(sample_feed):
    from currentreader.database.models import Article

    return [
        Article(
            id="a" * 16,
            feed_id=sample_feed.id,
            title="Python Programming Tutorial",
            url="https://x.test/python",
            published_at=datetime(2024, 9, 5, 12, 0, tzinfo=timezone.utc),
            snippet="Learn Python programming from scratch.",
            content_text="Learn Python programming from scratch.",
        ),
        Article(
            id="b" * 16,
            feed_id=sample_feed.id,
            title="JavaScript Framework Guide",
            url="https://x.test/js",
            author="Jane Doe",
            published_at=datetime(2024, 9, 4, 12, 0, tzinfo=timezone.utc),
            snippet="Comprehensive guide to JavaScript frameworks.",
            content_text="Comprehensive guide to JavaScript frameworks.",
        ),
    ]
