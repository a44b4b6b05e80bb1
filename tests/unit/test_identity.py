"""
Unit Tests for Identity Hashing
===============================

Feed and article ids must be stable for the same input.
"""

import hashlib
import os
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path

from currentreader.ingestion.identity import (
    article_id_for,
    article_key,
    feed_id_for,
    hash_id,
)


class TestHashId:
    """Test cases for hash_id."""

    def test_truncated_sha256(self):
        expected = hashlib.sha256(b"https://x.test/feed").hexdigest()[:16]
        assert hash_id("https://x.test/feed") == expected

    def test_fixed_length_hex(self):
        value = hash_id("anything")
        assert len(value) == 16
        int(value, 16)

    def test_custom_length(self):
        assert len(hash_id("anything", length=32)) == 32

    def test_stable_across_processes(self):
        """The id must not depend on per-process hash seeds."""
        code = (
            "from currentreader.ingestion.identity import feed_id_for;"
            "print(feed_id_for('https://x.test/feed'))"
        )
        output = subprocess.run(
            [sys.executable, "-c", code],
            capture_output=True,
            text=True,
            check=True,
            cwd=str(Path(__file__).resolve().parents[2]),
            env={**os.environ, "PYTHONHASHSEED": "12345"},
        ).stdout.strip()
        assert feed_id_for("https://x.test/feed") == output


class TestArticleIdentity:
    """Test cases for the article key fallback chain."""

    def test_guid_wins(self):
        assert article_key("g1", "https://x.test/a", "A") == "g1"

    def test_link_when_no_guid(self):
        assert article_key(None, "https://x.test/a", "A") == "https://x.test/a"

    def test_title_when_no_guid_or_link(self):
        assert article_key("", "  ", "A") == "A"

    def test_timestamp_last(self):
        published = datetime(2024, 9, 5, 12, 0, tzinfo=timezone.utc)
        assert article_key(None, None, None, published) == "2024-09-05T12:00:00+00:00"

    def test_content_when_nothing_else(self):
        key = article_key(None, None, None, None, "  body only ")
        assert key == "content:" + hash_id("body only", 64)
        assert article_key(None, None, None, None, "   ") == ""

    def test_timestamp_beats_content(self):
        published = datetime(2024, 9, 5, 12, 0, tzinfo=timezone.utc)
        assert article_key(None, None, None, published, "body") == published.isoformat()

    def test_same_guid_same_feed_same_id(self):
        feed_id = feed_id_for("https://x.test/feed")
        first = article_id_for(feed_id, "g1", "https://x.test/a", "A")
        second = article_id_for(feed_id, "g1", "https://x.test/changed", "A updated")
        assert first == second

    def test_same_guid_other_feed_differs(self):
        first = article_id_for(feed_id_for("https://x.test/feed"), "g1")
        second = article_id_for(feed_id_for("https://y.test/feed"), "g1")
        assert first != second

    def test_matches_feed_prefixed_hash(self):
        feed_id = feed_id_for("https://x.test/feed")
        assert article_id_for(feed_id, "g1") == hash_id(f"{feed_id}:g1")
