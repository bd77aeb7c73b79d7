"""JSON document store for activities and insights -- SQLite-backed.

Each collection is one table: the full document lives in ``body`` as JSON,
and a few fields are copied into indexed columns for filtered, time-ordered
listing. Writes are last-write-wins.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any

from screensense.common.errors import StoreError

logger = logging.getLogger("screensense.store")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS activities (
    id          TEXT PRIMARY KEY,
    kind        TEXT NOT NULL,
    app_name    TEXT NOT NULL DEFAULT '',
    browser_url TEXT NOT NULL DEFAULT '',
    timestamp   TEXT NOT NULL,
    processed   INTEGER NOT NULL DEFAULT 0,
    body        TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_activities_ts ON activities(timestamp DESC);
CREATE INDEX IF NOT EXISTS idx_activities_kind ON activities(kind);
CREATE INDEX IF NOT EXISTS idx_activities_url ON activities(browser_url);

CREATE TABLE IF NOT EXISTS insights (
    id         TEXT PRIMARY KEY,
    category   TEXT NOT NULL,
    status     TEXT NOT NULL,
    priority   INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    body       TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_insights_created ON insights(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_insights_category ON insights(category);
CREATE INDEX IF NOT EXISTS idx_insights_status ON insights(status);
CREATE INDEX IF NOT EXISTS idx_insights_priority ON insights(priority DESC);
"""

# collection -> (indexed columns, time column used for ordering)
COLLECTIONS: dict[str, tuple[tuple[str, ...], str]] = {
    "activities": (("kind", "app_name", "browser_url", "timestamp", "processed"), "timestamp"),
    "insights": (("category", "status", "priority", "created_at"), "created_at"),
}


class DocumentStore:
    """Lazily-connected SQLite document store.

    The first operation opens the connection; every later call reuses it.
    Connection failures are raised as StoreError and not retried.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
        except (sqlite3.Error, OSError) as exc:
            logger.error("Document store connection error (%s): %s", self._db_path, exc)
            raise StoreError(f"Cannot open document store at {self._db_path}: {exc}") from exc
        self._conn = conn
        logger.info("New document store connection established: %s", self._db_path)
        return conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "DocumentStore":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, collection: str, doc: dict[str, Any]) -> str:
        return self.insert_many(collection, [doc])[0]

    def insert_many(self, collection: str, docs: list[dict[str, Any]]) -> list[str]:
        """Insert documents, returning their generated ids in order."""
        columns, _ = _collection(collection)
        ids = [uuid.uuid4().hex for _ in docs]
        rows = [
            (doc_id, *(_column_value(doc, c) for c in columns), json.dumps(doc, default=str))
            for doc_id, doc in zip(ids, docs)
        ]
        placeholders = ", ".join("?" for _ in range(len(columns) + 2))
        sql = f"INSERT INTO {collection} (id, {', '.join(columns)}, body) VALUES ({placeholders})"
        conn = self.connect()
        try:
            conn.executemany(sql, rows)
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreError(f"Insert into {collection} failed: {exc}") from exc
        return ids

    def update_fields(self, collection: str, doc_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
        """Merge *fields* into a stored document. Returns the new document, or None if absent."""
        columns, _ = _collection(collection)
        current = self.get(collection, doc_id)
        if current is None:
            return None
        current.update(fields)
        body = {k: v for k, v in current.items() if k != "id"}
        set_clause = ", ".join(f"{c} = ?" for c in columns)
        vals = [_column_value(body, c) for c in columns] + [json.dumps(body, default=str), doc_id]
        conn = self.connect()
        try:
            conn.execute(f"UPDATE {collection} SET {set_clause}, body = ? WHERE id = ?", vals)
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreError(f"Update of {collection}/{doc_id} failed: {exc}") from exc
        return current

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        _collection(collection)
        row = self._execute(f"SELECT id, body FROM {collection} WHERE id = ?", [doc_id]).fetchone()
        return _row_to_doc(row) if row else None

    def find(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        *,
        since: str | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Return documents matching equality *filters*, newest first."""
        _, time_col = _collection(collection)
        where, vals = _where(collection, filters, since)
        sql = (
            f"SELECT id, body FROM {collection}{where} "
            f"ORDER BY {time_col} DESC LIMIT ? OFFSET ?"
        )
        rows = self._execute(sql, vals + [limit, offset]).fetchall()
        return [_row_to_doc(r) for r in rows]

    def count(self, collection: str, filters: dict[str, Any] | None = None, *, since: str | None = None) -> int:
        where, vals = _where(collection, filters, since)
        return self._execute(f"SELECT COUNT(*) FROM {collection}{where}", vals).fetchone()[0]

    def _execute(self, sql: str, params: list[Any]) -> sqlite3.Cursor:
        conn = self.connect()
        try:
            return conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise StoreError(f"Query failed: {exc}") from exc


def _collection(name: str) -> tuple[tuple[str, ...], str]:
    try:
        return COLLECTIONS[name]
    except KeyError:
        raise StoreError(f"Unknown collection: {name}") from None


def _column_value(doc: dict[str, Any], column: str) -> Any:
    value = doc.get(column)
    if isinstance(value, bool):
        return int(value)
    if value is None:
        return 0 if column in ("processed", "priority") else ""
    return value


def _where(collection: str, filters: dict[str, Any] | None, since: str | None) -> tuple[str, list[Any]]:
    columns, time_col = _collection(collection)
    clauses: list[str] = []
    vals: list[Any] = []
    for key, value in (filters or {}).items():
        if key not in columns:
            raise StoreError(f"Cannot filter {collection} on unindexed field {key!r}")
        clauses.append(f"{key} = ?")
        vals.append(int(value) if isinstance(value, bool) else value)
    if since:
        clauses.append(f"{time_col} >= ?")
        vals.append(since)
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, vals


def _row_to_doc(row: sqlite3.Row) -> dict[str, Any]:
    doc = json.loads(row["body"])
    doc["id"] = row["id"]
    return doc
