"""
CurrentReader Database Schema
=============================

SQLite schema for the article catalog with foreign key constraints and the
named indexes the catalog store exposes.

Tables:
- feeds: subscribed sources with their cache validators
- articles: normalized entries, cascade-deleted with their feed
- metadata: small JSON-encoded application values
"""

import sqlite3
import logging
from contextlib import closing
from pathlib import Path
from typing import Dict, NamedTuple, Tuple

logger = logging.getLogger(__name__)


class IndexSpec(NamedTuple):
    """A named catalog index: SQL index name, key columns, result ordering."""
    sql_name: str
    columns: Tuple[str, ...]
    order_by: str


# Logical index name -> definition, per table
INDEXES: Dict[str, Dict[str, IndexSpec]] = {
    "articles": {
        "by-feed": IndexSpec("idx_articles_feed", ("feed_id",), "id DESC"),
        "by-saved": IndexSpec("idx_articles_saved", ("saved",), "id DESC"),
        "by-feed-and-date": IndexSpec(
            "idx_articles_feed_date",
            ("feed_id", "published_at"),
            "published_at DESC, id DESC",
        ),
    },
    "feeds": {
        "by-created": IndexSpec("idx_feeds_created", ("created_at",), "created_at ASC"),
        "by-title": IndexSpec("idx_feeds_title", ("title",), "title ASC"),
    },
}

TABLES = ("feeds", "articles", "metadata")


class DatabaseSchema:
    """Database schema manager for the CurrentReader SQLite database."""

    def __init__(self, db_path: str = "data/currentreader.db"):
        """Initialize database schema manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables with proper schema."""
        with closing(self.get_connection()) as conn:
            # Create tables in dependency order
            self._create_feeds_table(conn)
            self._create_articles_table(conn)
            self._create_metadata_table(conn)

            self._run_migrations(conn)
            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_feeds_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS feeds (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                feed_url TEXT NOT NULL,
                site_url TEXT NOT NULL,
                tags TEXT NOT NULL DEFAULT '[]',
                created_at TIMESTAMP NOT NULL,
                last_fetched_at TIMESTAMP,
                etag TEXT,
                last_modified TEXT
            )
        """
        )

    def _create_articles_table(self, conn: sqlite3.Connection) -> None:
        """Create articles table; rows go away with their feed."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS articles (
                id TEXT PRIMARY KEY,
                feed_id TEXT NOT NULL,
                title TEXT NOT NULL,
                url TEXT NOT NULL DEFAULT '',
                author TEXT,
                published_at TIMESTAMP,
                published_at_inferred BOOLEAN NOT NULL DEFAULT FALSE,
                snippet TEXT,
                content_text TEXT,
                content_html TEXT,
                read BOOLEAN NOT NULL DEFAULT FALSE,
                saved BOOLEAN NOT NULL DEFAULT FALSE,
                FOREIGN KEY (feed_id) REFERENCES feeds(id) ON DELETE CASCADE
            )
        """
        )

    def _create_metadata_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        """Create the named indexes listed in INDEXES."""
        for table, indexes in INDEXES.items():
            for spec in indexes.values():
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS {spec.sql_name} "
                    f"ON {table}({', '.join(spec.columns)})"
                )

    def _run_migrations(self, conn: sqlite3.Connection) -> None:
        """Run database migrations for existing databases."""
        cursor = conn.execute("PRAGMA table_info(articles)")
        columns = [column[1] for column in cursor.fetchall()]

        if "published_at_inferred" not in columns:
            logger.info("Adding published_at_inferred column to articles table")
            conn.execute(
                "ALTER TABLE articles ADD COLUMN published_at_inferred BOOLEAN NOT NULL DEFAULT FALSE"
            )

    def drop_tables(self) -> None:
        """Drop all tables (for testing/reset purposes)."""
        with closing(self.get_connection()) as conn:
            for table in reversed(TABLES):
                conn.execute(f"DROP TABLE IF EXISTS {table}")

            conn.commit()
            logger.info("All database tables dropped")

    def get_connection(self) -> sqlite3.Connection:
        """Get database connection with foreign keys enabled."""
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.row_factory = sqlite3.Row
        return conn

    def verify_schema(self) -> bool:
        """Verify database schema is correctly created."""
        try:
            with closing(self.get_connection()) as conn:
                cursor = conn.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                """
                )
                tables = {row[0] for row in cursor.fetchall()}

                if not set(TABLES).issubset(tables):
                    logger.error(
                        f"Missing tables. Expected: {set(TABLES)}, Found: {tables}"
                    )
                    return False

                conn.execute("PRAGMA foreign_key_check")

                logger.info("Database schema verification passed")
                return True

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False


def create_tables(db_path: str = "data/currentreader.db") -> None:
    """Convenience function to create database tables.

    Args:
        db_path: Path to SQLite database file
    """
    schema = DatabaseSchema(db_path)
    schema.create_tables()
