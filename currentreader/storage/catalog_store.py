"""
Catalog Store
=============

Keyed storage for feeds, articles and metadata on top of the SQLite
connection pool. Every write is a single atomic upsert; feed deletion
cascades to the feed's articles.
"""

import json
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from ..database.connection import DatabaseConnection
from ..database.models import Article, Feed
from ..database.schema import INDEXES
from ..utils.exceptions import ErrorCode, NotFoundError, StoreIOError, ValidationError
from ..utils.logging import get_logger_for_component

Record = Union[Feed, Article]

MODEL_TABLES = {
    "feeds": Feed,
    "articles": Article,
}

FEED_COLUMNS = (
    "id", "title", "feed_url", "site_url", "tags", "created_at",
    "last_fetched_at", "etag", "last_modified",
)

ARTICLE_COLUMNS = (
    "id", "feed_id", "title", "url", "author", "published_at",
    "published_at_inferred", "snippet", "content_text", "content_html",
    "read", "saved",
)

TABLE_COLUMNS = {
    "feeds": FEED_COLUMNS,
    "articles": ARTICLE_COLUMNS,
}


def _upsert_sql(table: str, columns: Tuple[str, ...]) -> str:
    assignments = ", ".join(f"{col} = excluded.{col}" for col in columns if col != "id")
    return (
        f"INSERT INTO {table} ({', '.join(columns)}) "
        f"VALUES ({', '.join('?' for _ in columns)}) "
        f"ON CONFLICT(id) DO UPDATE SET {assignments}"
    )


def _index_value(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class CatalogStore:
    """Repository for the feed/article catalog."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize catalog store.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("catalog_store")

    @staticmethod
    def _table_for(record: Record) -> str:
        if isinstance(record, Feed):
            return "feeds"
        if isinstance(record, Article):
            return "articles"
        raise ValidationError(
            f"Unsupported record type: {type(record).__name__}",
            field_name="record",
        )

    @staticmethod
    def _check_table(table: str) -> None:
        if table not in MODEL_TABLES:
            raise ValidationError(
                f"Unknown table: {table}",
                field_name="table",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
            )

    def _from_row(self, table: str, row: sqlite3.Row) -> Record:
        return MODEL_TABLES[table].from_db_row(dict(row))

    def get(self, table: str, record_id: str) -> Optional[Record]:
        """Get a record by id.

        Args:
            table: "feeds" or "articles"
            record_id: Record identifier

        Returns:
            The record, or None if absent

        Raises:
            StoreIOError: If the read fails
        """
        self._check_table(table)
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    f"SELECT * FROM {table} WHERE id = ?", (record_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreIOError(f"Failed to read {table}/{record_id}: {e}", table=table) from e

        return self._from_row(table, row) if row else None

    def require(self, table: str, record_id: str) -> Record:
        """Like get(), but a missing record raises NotFoundError."""
        record = self.get(table, record_id)
        if record is None:
            resource = "Feed" if table == "feeds" else "Article"
            raise NotFoundError(
                f"{resource} {record_id} not found",
                resource=resource,
                resource_id=record_id,
            )
        return record

    def put(self, record: Record) -> Record:
        """Insert or replace a record in place.

        An upsert is used rather than REPLACE so that rewriting a feed row never
        triggers the cascade on its articles.

        Raises:
            StoreIOError: If the write fails (including a missing parent feed)
        """
        table = self._table_for(record)
        columns = TABLE_COLUMNS[table]
        row = record.to_db_row()

        try:
            with self.db.get_connection() as conn:
                conn.execute(_upsert_sql(table, columns), tuple(row[col] for col in columns))
                conn.commit()
        except sqlite3.Error as e:
            raise StoreIOError(
                f"Failed to write {table}/{record.id}: {e}", table=table
            ) from e

        self.logger.debug(f"Stored {table}/{record.id}")
        return record

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record. Deleting a feed deletes its articles.

        Returns:
            True if a row was removed
        """
        self._check_table(table)
        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
                deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StoreIOError(
                f"Failed to delete {table}/{record_id}: {e}", table=table
            ) from e

        if deleted:
            self.logger.info(f"Deleted {table}/{record_id}")
        return deleted

    def list_all(self, table: str) -> List[Record]:
        """All records of a table."""
        self._check_table(table)
        try:
            rows = self.db.execute_query(f"SELECT * FROM {table} ORDER BY id")
        except sqlite3.Error as e:
            raise StoreIOError(f"Failed to list {table}: {e}", table=table) from e
        return [self._from_row(table, row) for row in rows]

    def list_by_index(self, table: str, index_name: str, key: Any) -> List[Record]:
        """Records matching a named index.

        Args:
            table: "feeds" or "articles"
            index_name: One of the names in schema.INDEXES for the table
            key: Value for the index's leading column, or a tuple for a
                prefix of a compound index

        Raises:
            ValidationError: Unknown index or too many key parts
            StoreIOError: If the read fails
        """
        self._check_table(table)
        spec = INDEXES.get(table, {}).get(index_name)
        if spec is None:
            raise ValidationError(
                f"Unknown index {index_name!r} on {table}",
                field_name="index_name",
            )

        key_parts = key if isinstance(key, tuple) else (key,)
        if not key_parts or len(key_parts) > len(spec.columns):
            raise ValidationError(
                f"Index {index_name!r} takes 1 to {len(spec.columns)} key parts",
                field_name="key",
            )

        where = " AND ".join(f"{col} = ?" for col in spec.columns[: len(key_parts)])
        params = tuple(_index_value(part) for part in key_parts)

        try:
            rows = self.db.execute_query(
                f"SELECT * FROM {table} WHERE {where} ORDER BY {spec.order_by}", params
            )
        except sqlite3.Error as e:
            raise StoreIOError(
                f"Failed to query {table} by {index_name}: {e}", table=table
            ) from e
        return [self._from_row(table, row) for row in rows]

    def search_articles(self, query: str) -> List[Article]:
        """Case-insensitive substring match over title, author, snippet and text."""
        needle = query.casefold()
        haystack = (
            "casefold(coalesce(title, '') || ' ' || coalesce(author, '') || ' ' || "
            "coalesce(snippet, '') || ' ' || coalesce(content_text, ''))"
        )
        try:
            rows = self.db.execute_query(
                f"SELECT * FROM articles WHERE instr({haystack}, ?) > 0", (needle,)
            )
        except sqlite3.Error as e:
            raise StoreIOError(f"Article search failed: {e}", table="articles") from e
        return [Article.from_db_row(dict(row)) for row in rows]

    def get_metadata(self, key: str, default: Any = None) -> Any:
        """Get a JSON-decoded metadata value."""
        try:
            row = self.db.execute_one("SELECT value FROM metadata WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StoreIOError(f"Failed to read metadata {key}: {e}", table="metadata") from e
        if row is None:
            return default
        return json.loads(row["value"])

    def set_metadata(self, key: str, value: Any) -> None:
        """Store a JSON-encodable metadata value."""
        try:
            self.db.execute_update(
                "INSERT INTO metadata (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, json.dumps(value, default=str)),
            )
        except sqlite3.Error as e:
            raise StoreIOError(f"Failed to write metadata {key}: {e}", table="metadata") from e

    def get_statistics(self) -> Dict[str, Any]:
        """Row counts for the catalog tables."""
        try:
            return self.db.get_database_info()["table_counts"]
        except sqlite3.Error as e:
            raise StoreIOError(f"Failed to read catalog statistics: {e}") from e
