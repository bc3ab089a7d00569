"""
SQLite-backed document store for radars and their reports.

Documents live in named collections addressed by path, mirroring a
hierarchical document database: radars in ``radars`` and each radar's report
history in ``radars/<radar_id>/reports``. Reports are append-only; "latest"
means last created.

Schema
──────
table: documents
  seq        INTEGER PRIMARY KEY AUTOINCREMENT  (creation order)
  id         TEXT NOT NULL UNIQUE               (server-generated, opaque)
  collection TEXT NOT NULL
  created_at TEXT NOT NULL                      (ISO-8601 UTC)
  data       TEXT NOT NULL                      (document fields as JSON)
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "radar.db"


def _db_path() -> Path:
    """Return the database file path, honouring a DB_PATH env var if set."""
    env = os.getenv("DB_PATH")
    return Path(env) if env else DEFAULT_DB_PATH


@contextmanager
def _connect():
    """Yield a connected sqlite3.Connection, creating the file/dir if needed."""
    path = _db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db() -> None:
    """Create the documents table if it doesn't exist yet."""
    with _connect() as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                seq        INTEGER PRIMARY KEY AUTOINCREMENT,
                id         TEXT NOT NULL UNIQUE,
                collection TEXT NOT NULL,
                created_at TEXT NOT NULL,
                data       TEXT NOT NULL
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_documents_collection "
            "ON documents (collection, seq)"
        )
    logger.info("Document store initialised at %s", _db_path())


def reports_collection(radar_id: str) -> str:
    return f"radars/{radar_id}/reports"


# ── Storage boundary ───────────────────────────────────────────────────────


def sanitize_for_storage(value: Any) -> Any:
    """Recursively drop ``None`` values from mappings and sequences.

    Applied once, to each report on its way into the store. Every other value and the
    nesting structure are preserved as-is.

    Examples:
        >>> sanitize_for_storage({"a": None, "b": [1, None, {"c": None}]})
        {'b': [1, {}]}
    """
    if isinstance(value, dict):
        return {
            key: sanitize_for_storage(item)
            for key, item in value.items()
            if item is not None
        }
    if isinstance(value, (list, tuple)):
        return [sanitize_for_storage(item) for item in value if item is not None]
    return value


def _row_to_document(row: sqlite3.Row) -> dict[str, Any]:
    data = json.loads(row["data"])
    data["id"] = row["id"]
    data["createdAt"] = row["created_at"]
    return data


# ── CRUD ───────────────────────────────────────────────────────────────────


def create_document(collection: str, data: dict[str, Any]) -> str:
    """Append a new document to *collection* and return its generated id.

    Args:
        collection: Collection path, e.g. ``"radars/abc/reports"``.
        data: JSON-serialisable document fields.

    Returns:
        The opaque id assigned to the document.
    """
    doc_id = uuid.uuid4().hex
    now = datetime.now(timezone.utc).isoformat()
    payload = json.dumps(data)

    with _connect() as conn:
        conn.execute(
            "INSERT INTO documents (id, collection, created_at, data) "
            "VALUES (?, ?, ?, ?)",
            (doc_id, collection, now, payload),
        )

    logger.info("Created document id=%s in %s", doc_id, collection)
    return doc_id


def get_document(collection: str, doc_id: str) -> dict[str, Any] | None:
    """Fetch one document, or None if it does not exist."""
    with _connect() as conn:
        row = conn.execute(
            "SELECT id, created_at, data FROM documents "
            "WHERE collection = ? AND id = ?",
            (collection, doc_id),
        ).fetchone()

    if row is None:
        return None
    return _row_to_document(row)


def update_document(collection: str, doc_id: str, data: dict[str, Any]) -> bool:
    """Shallow-merge *data* into an existing document.

    Returns:
        True if the document existed and was updated, False otherwise.
    """
    with _connect() as conn:
        row = conn.execute(
            "SELECT data FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
        ).fetchone()
        if row is None:
            return False

        merged = json.loads(row["data"])
        merged.update(data)
        merged["updatedAt"] = datetime.now(timezone.utc).isoformat()
        conn.execute(
            "UPDATE documents SET data = ? WHERE collection = ? AND id = ?",
            (json.dumps(merged), collection, doc_id),
        )

    logger.info("Updated document id=%s in %s", doc_id, collection)
    return True


def list_documents(collection: str, limit: int = 50) -> list[dict[str, Any]]:
    """Return up to *limit* documents from *collection*, newest first."""
    with _connect() as conn:
        rows = conn.execute(
            "SELECT id, created_at, data FROM documents WHERE collection = ? "
            "ORDER BY seq DESC LIMIT ?",
            (collection, limit),
        ).fetchall()

    documents: list[dict[str, Any]] = []
    for row in rows:
        try:
            documents.append(_row_to_document(row))
        except ValueError as exc:
            logger.warning("Skipping corrupt document id=%s: %s", row["id"], exc)
    return documents


def latest_document(collection: str) -> dict[str, Any] | None:
    """Return the most recently created document in *collection*."""
    documents = list_documents(collection, limit=1)
    return documents[0] if documents else None
