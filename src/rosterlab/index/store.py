"""SQLite-backed cache of library metadata.

The index is derived data: it can always be rebuilt from a filesystem scan.
Writes run inside explicit ``BEGIN IMMEDIATE`` transactions on a WAL-mode
database, so readers on other connections keep seeing the last committed
snapshot until a reindex commits as a whole.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping

from rosterlab.batch import CancelToken, check_cancelled
from rosterlab.errors import IOFailure, NotFoundError
from rosterlab.library import ContentItem, ContentKind, TagDetector

from .models import LibraryIndexRecord, ReindexSummary
from .schema import (
    ALL_COLUMNS,
    CLASSIFICATION_COLUMNS,
    CONTENT_COLUMNS,
    SCHEMA_SQL,
    SCHEMA_VERSION,
    TABLES,
    table_for,
)

LOGGER = logging.getLogger(__name__)

_BOOL_COLUMNS = {"valid", "readable", "has_music", "is_hd", "has_ai"}
_DATE_COLUMNS = {"modified_at", "installed_at", "updated_at"}


def _to_sql(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column in _BOOL_COLUMNS:
        return int(bool(value))
    if column in _DATE_COLUMNS and isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    return value


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


class LibraryIndex:
    """Persistent per-item metadata cache keyed by stable id."""

    def __init__(
        self, db_path: Path, *, tag_detector: TagDetector | None = None, timeout: float = 5.0
    ) -> None:
        """Open (and create if needed) the index database.

        Args:
            db_path: SQLite database file.
            tag_detector: Used to seed classification fields during reindex.
            timeout: Seconds a writer waits for another writer's lock.
        """
        self.db_path = db_path
        self.tag_detector = tag_detector or TagDetector()
        self.timeout = timeout
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._lock = threading.Lock()
        self._initialize()

    # Connection handling ---------------------------------------------

    def _connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            return conn
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.create_function("casefold", 1, _casefold, deterministic=True)
        except (OSError, sqlite3.Error) as exc:
            raise IOFailure(f"Could not open library index {self.db_path}: {exc}", path=self.db_path) from exc
        self._local.conn = conn
        with self._lock:
            self._connections.append(conn)
        return conn

    def _initialize(self) -> None:
        conn = self._connection()
        try:
            conn.executescript(SCHEMA_SQL)
            version = conn.execute("PRAGMA user_version").fetchone()[0]
            if version < SCHEMA_VERSION:
                conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        except sqlite3.Error as exc:
            raise IOFailure(f"Could not initialize library index: {exc}", path=self.db_path) from exc

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        conn = self._connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            raise IOFailure(f"Library index is busy: {exc}", path=self.db_path) from exc
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            try:
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                conn.execute("ROLLBACK")
                raise IOFailure(f"Could not commit library index: {exc}", path=self.db_path) from exc

    def _query(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        try:
            return self._connection().execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as exc:
            raise IOFailure(f"Library index query failed: {exc}", path=self.db_path) from exc

    def close(self) -> None:
        """Close every connection opened by this index."""
        with self._lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local = threading.local()

    # Reads ------------------------------------------------------------

    def get(self, kind: ContentKind, item_id: str) -> LibraryIndexRecord | None:
        rows = self._query(f"SELECT * FROM {table_for(kind)} WHERE id = ?", (item_id,))
        return self._record(rows[0], kind) if rows else None

    def all(self, kind: ContentKind) -> list[LibraryIndexRecord]:
        """Return every record of ``kind`` ordered case-insensitively by name."""
        rows = self._query(
            f"SELECT * FROM {table_for(kind)} ORDER BY name COLLATE NOCASE, id"
        )
        return self._records(rows, kind)

    def search(self, kind: ContentKind, query: str) -> list[LibraryIndexRecord]:
        """Return records whose name or author contains ``query`` (case-insensitive).

        An empty query returns every record.
        """
        needle = query.strip().casefold()
        if not needle:
            return self.all(kind)
        rows = self._query(
            f"SELECT * FROM {table_for(kind)} "
            "WHERE instr(casefold(name), ?) > 0 OR instr(casefold(author), ?) > 0 "
            "ORDER BY name COLLATE NOCASE, id",
            (needle, needle),
        )
        return self._records(rows, kind)

    def recently_installed(self, limit: int = 10) -> list[LibraryIndexRecord]:
        """Return the newest records across characters and stages."""
        selects = " UNION ALL ".join(
            f"SELECT '{kind.value}' AS kind, * FROM {table}" for kind, table in TABLES.items()
        )
        rows = self._query(f"{selects} ORDER BY installed_at DESC, id LIMIT ?", (limit,))
        return [self._record(row, ContentKind(row["kind"])) for row in rows]

    def counts(self) -> dict[str, int]:
        return {
            kind.value: self._query(f"SELECT COUNT(*) FROM {table}")[0][0]
            for kind, table in TABLES.items()
        }

    def snapshot(self) -> dict[str, list[dict[str, Any]]]:
        """Return every stored row, ordered by id, for comparison and export."""
        result: dict[str, list[dict[str, Any]]] = {}
        for table in (*TABLES.values(), "custom_tags"):
            order = "kind, item_id, tag" if table == "custom_tags" else "id"
            result[table] = [dict(row) for row in self._query(f"SELECT * FROM {table} ORDER BY {order}")]
        return result

    def tags(self, kind: ContentKind, item_id: str) -> list[str]:
        rows = self._query(
            "SELECT tag FROM custom_tags WHERE kind = ? AND item_id = ? ORDER BY tag",
            (kind.value, item_id),
        )
        return [row["tag"] for row in rows]

    # Writes -----------------------------------------------------------

    def upsert(self, record: LibraryIndexRecord, *, now: datetime | None = None) -> str:
        """Insert or update one record.

        ``installed_at`` is kept for existing rows, ``updated_at`` only moves when a
        stored value changes, and classification fields already set are kept.

        Returns:
            str: ``inserted``, ``updated`` or ``unchanged``.
        """
        stamp = now or datetime.now(timezone.utc)
        with self._write() as conn:
            return self._upsert_row(conn, record, stamp)

    def delete(self, kind: ContentKind, item_id: str) -> bool:
        """Delete a record and its custom tags; returns False when it was absent."""
        with self._write() as conn:
            return self._delete_row(conn, kind, item_id)

    def set_classification(self, kind: ContentKind, item_id: str, **fields: Any) -> None:
        """Overwrite classification fields of an existing record.

        Raises:
            NotFoundError: If the record does not exist.
            ValueError: If a field is not a classification column.
        """
        unknown = set(fields) - set(CLASSIFICATION_COLUMNS)
        if unknown:
            raise ValueError(f"Not classification fields: {', '.join(sorted(unknown))}")
        if not fields:
            return
        table = table_for(kind)
        assignments = ", ".join(f"{column} = ?" for column in fields)
        values = [_to_sql(column, value) for column, value in fields.items()]
        stamp = _to_sql("updated_at", datetime.now(timezone.utc))
        with self._write() as conn:
            cursor = conn.execute(
                f"UPDATE {table} SET {assignments}, updated_at = ? WHERE id = ?",
                (*values, stamp, item_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"No indexed {kind.value} {item_id!r}", item_id=item_id)

    def add_tag(self, kind: ContentKind, item_id: str, tag: str) -> None:
        cleaned = tag.strip()
        if not cleaned:
            return
        with self._write() as conn:
            if conn.execute(f"SELECT 1 FROM {table_for(kind)} WHERE id = ?", (item_id,)).fetchone() is None:
                raise NotFoundError(f"No indexed {kind.value} {item_id!r}", item_id=item_id)
            conn.execute(
                "INSERT OR IGNORE INTO custom_tags (kind, item_id, tag) VALUES (?, ?, ?)",
                (kind.value, item_id, cleaned),
            )

    def remove_tag(self, kind: ContentKind, item_id: str, tag: str) -> None:
        with self._write() as conn:
            conn.execute(
                "DELETE FROM custom_tags WHERE kind = ? AND item_id = ? AND tag = ?",
                (kind.value, item_id, tag.strip()),
            )

    def reindex(
        self,
        items: Iterable[ContentItem],
        *,
        cancel: CancelToken | None = None,
        now: datetime | None = None,
    ) -> ReindexSummary:
        """Make the index an exact mirror of a filesystem scan.

        Every scanned character and stage is inserted or updated and every
        indexed id missing from the scan is deleted, all in one transaction.
        Degraded items (unreadable definitions) are stored with their defaults.

        Args:
            items: Scan output; screenpacks are ignored.
            cancel: Token checked between items; cancelling rolls everything back.
            now: Timestamp used for ``installed_at``/``updated_at``.

        Returns:
            ReindexSummary: Counts of inserted, updated, unchanged and deleted rows.

        Raises:
            OperationCancelled: If ``cancel`` fires; the index is left untouched.
            IOFailure: If the database cannot be written.
        """
        stamp = now or datetime.now(timezone.utc)
        wanted: dict[ContentKind, dict[str, LibraryIndexRecord]] = {kind: {} for kind in TABLES}
        for item in items:
            if item.kind not in TABLES:
                continue
            bucket = wanted[item.kind]
            if item.id in bucket:
                LOGGER.info("Skipping duplicate %s %s at %s", item.kind.value, item.id, item.path)
                continue
            tags = self.tag_detector.detect(item.id, item.name, item.author)
            bucket[item.id] = LibraryIndexRecord.from_item(item, tags)

        summary = ReindexSummary()
        with self._write() as conn:
            for kind, records in wanted.items():
                table = table_for(kind)
                stale = {row["id"] for row in conn.execute(f"SELECT id FROM {table}")} - set(records)
                for record in records.values():
                    check_cancelled(cancel)
                    outcome = self._upsert_row(conn, record, stamp)
                    setattr(summary, outcome, getattr(summary, outcome) + 1)
                    if not record.readable or not record.valid:
                        summary.degraded += 1
                for item_id in sorted(stale):
                    check_cancelled(cancel)
                    self._delete_row(conn, kind, item_id)
                    summary.deleted += 1

        LOGGER.info("Reindexed library: %s", summary.as_dict())
        return summary

    # Internal helpers -------------------------------------------------

    def _upsert_row(
        self, conn: sqlite3.Connection, record: LibraryIndexRecord, stamp: datetime
    ) -> str:
        table = table_for(record.kind)
        data = record.model_dump()
        incoming = {column: _to_sql(column, data[column]) for column in ALL_COLUMNS if column != "id"}
        existing = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (record.id,)).fetchone()

        if existing is None:
            incoming["installed_at"] = _to_sql("installed_at", record.installed_at or stamp)
            incoming["updated_at"] = _to_sql("updated_at", stamp)
            columns = ("id", *incoming)
            placeholders = ", ".join("?" for _ in columns)
            conn.execute(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                (record.id, *incoming.values()),
            )
            return "inserted"

        merged = {column: incoming[column] for column in CONTENT_COLUMNS}
        for column in CLASSIFICATION_COLUMNS:
            merged[column] = existing[column] if existing[column] is not None else incoming[column]
        if all(existing[column] == value for column, value in merged.items()):
            return "unchanged"

        merged["updated_at"] = _to_sql("updated_at", stamp)
        assignments = ", ".join(f"{column} = ?" for column in merged)
        conn.execute(
            f"UPDATE {table} SET {assignments} WHERE id = ?", (*merged.values(), record.id)
        )
        return "updated"

    def _delete_row(self, conn: sqlite3.Connection, kind: ContentKind, item_id: str) -> bool:
        cursor = conn.execute(f"DELETE FROM {table_for(kind)} WHERE id = ?", (item_id,))
        conn.execute(
            "DELETE FROM custom_tags WHERE kind = ? AND item_id = ?", (kind.value, item_id)
        )
        return cursor.rowcount > 0

    def _record(self, row: Mapping[str, Any], kind: ContentKind) -> LibraryIndexRecord:
        data = {column: row[column] for column in ALL_COLUMNS}
        for column in _BOOL_COLUMNS:
            if data[column] is not None:
                data[column] = bool(data[column])
        return LibraryIndexRecord(kind=kind, tags=self.tags(kind, row["id"]), **data)

    def _records(self, rows: Iterable[sqlite3.Row], kind: ContentKind) -> list[LibraryIndexRecord]:
        return [self._record(row, kind) for row in rows]


__all__ = ["LibraryIndex"]
