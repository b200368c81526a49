"""Local SQLite storage for synced records, the sync queue, and caches."""

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from ..models import (
    MULTI_ROW_COLLECTIONS,
    RECORD_TYPES,
    Collection,
    format_datetime,
    parse_datetime,
    utcnow,
)

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1

# One document table per collection; the queue and caches are shared tables.
COLLECTION_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS {table} (
    id TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    updated_at TEXT
);
"""

SCHEMA = """
-- Pending remote mutations, at most one per (collection, item_id)
CREATE TABLE IF NOT EXISTS sync_queue (
    id TEXT PRIMARY KEY,
    collection TEXT NOT NULL,
    operation TEXT NOT NULL,
    item_id TEXT NOT NULL,
    payload TEXT,
    created_at TEXT NOT NULL,
    retry_count INTEGER NOT NULL DEFAULT 0,
    next_retry_at TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_sync_queue_item ON sync_queue(collection, item_id);
CREATE INDEX IF NOT EXISTS idx_sync_queue_created ON sync_queue(created_at);

-- Cached purchase entitlement, one slot per user
CREATE TABLE IF NOT EXISTS entitlement_cache (
    user_id TEXT PRIMARY KEY,
    entry TEXT NOT NULL
);

-- Small key/value state (last sync time, ...)
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT
);
"""


def _timestamp(value: datetime) -> str:
    # Fixed width so that string order matches time order
    return value.isoformat(timespec="microseconds")


@dataclass
class QueueItem:
    """A durable record of a mutation awaiting delivery to the remote store."""

    id: str
    collection: Collection
    operation: str  # "upsert" or "delete"
    item_id: str
    payload: dict[str, Any] | None
    created_at: datetime
    retry_count: int = 0
    next_retry_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "collection": self.collection.value,
            "operation": self.operation,
            "item_id": self.item_id,
            "payload": self.payload,
            "created_at": format_datetime(self.created_at),
            "retry_count": self.retry_count,
            "next_retry_at": format_datetime(self.next_retry_at),
        }


@dataclass
class ImportResult:
    success: bool
    error: str | None = None
    imported: int = 0


class CollectionTable:
    """CRUD access to one collection's records."""

    def __init__(self, store: "LocalStore", collection: Collection):
        self._store = store
        self.collection = collection
        self.record_type = RECORD_TYPES[collection]

    @property
    def table(self) -> str:
        return self.collection.value

    def get(self, record_id: str):
        """Get a record by id, or None."""
        conn = self._store._ensure_connected()
        row = conn.execute(
            f"SELECT data FROM {self.table} WHERE id = ?", (record_id,)
        ).fetchone()
        if row is None:
            return None
        return self.record_type.from_dict(json.loads(row["data"]))

    def put(self, record) -> None:
        """Insert or replace a record by id."""
        conn = self._store._ensure_connected()
        data = record.to_dict()
        conn.execute(
            f"""
            INSERT INTO {self.table} (id, data, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                data = excluded.data,
                updated_at = excluded.updated_at
            """,
            (record.id, json.dumps(data), data.get("updated_at")),
        )
        conn.commit()

    def delete(self, record_id: str) -> bool:
        """Physically delete a record. Returns True if a row was removed."""
        conn = self._store._ensure_connected()
        cursor = conn.execute(f"DELETE FROM {self.table} WHERE id = ?", (record_id,))
        conn.commit()
        return cursor.rowcount > 0

    def to_array(self) -> list:
        """Return every record in the collection."""
        conn = self._store._ensure_connected()
        cursor = conn.execute(f"SELECT data FROM {self.table} ORDER BY rowid")
        return [self.record_type.from_dict(json.loads(row["data"])) for row in cursor]

    def clear(self) -> None:
        conn = self._store._ensure_connected()
        conn.execute(f"DELETE FROM {self.table}")
        conn.commit()

    def count(self) -> int:
        conn = self._store._ensure_connected()
        return conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()[0]


class LocalStore:
    """SQLite-based per-device store.

    Holds one document table per synced collection, the sync queue, the
    entitlement cache and a small metadata table. Every mutating call
    commits immediately, so each operation is atomic on its own.
    """

    def __init__(self, db_path: str | Path):
        """Initialize the local store.

        Args:
            db_path: Path to SQLite database file (":memory:" for tests).
        """
        self.db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None
        self._tables = {c: CollectionTable(self, c) for c in Collection}

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if self._conn is not None:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        for collection in Collection:
            self._conn.executescript(
                COLLECTION_TABLE_SCHEMA.format(table=collection.value)
            )
        self._conn.executescript(SCHEMA)
        self._conn.commit()

        logger.info(f"LocalStore connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info("LocalStore connection closed")

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure we have a database connection."""
        if self._conn is None:
            self.connect()
        return self._conn

    def table(self, collection: Collection | str) -> CollectionTable:
        """Get the table for a collection."""
        return self._tables[Collection(collection)]

    # ==================== Sync Queue ====================

    def _row_to_queue_item(self, row: sqlite3.Row) -> QueueItem:
        return QueueItem(
            id=row["id"],
            collection=Collection(row["collection"]),
            operation=row["operation"],
            item_id=row["item_id"],
            payload=json.loads(row["payload"]) if row["payload"] else None,
            created_at=parse_datetime(row["created_at"]),
            retry_count=row["retry_count"],
            next_retry_at=parse_datetime(row["next_retry_at"]),
        )

    def find_queue_item(
        self, collection: Collection, item_id: str
    ) -> QueueItem | None:
        """Look up the queued mutation for a record, if any."""
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT * FROM sync_queue WHERE collection = ? AND item_id = ?",
            (collection.value, item_id),
        ).fetchone()
        return self._row_to_queue_item(row) if row else None

    def add_queue_item(self, item: QueueItem) -> None:
        conn = self._ensure_connected()
        conn.execute(
            """
            INSERT INTO sync_queue (
                id, collection, operation, item_id, payload,
                created_at, retry_count, next_retry_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item.id,
                item.collection.value,
                item.operation,
                item.item_id,
                json.dumps(item.payload) if item.payload is not None else None,
                _timestamp(item.created_at),
                item.retry_count,
                _timestamp(item.next_retry_at) if item.next_retry_at else None,
            ),
        )
        conn.commit()

    def replace_queue_payload(
        self,
        queue_id: str,
        operation: str,
        payload: dict[str, Any] | None,
        created_at: datetime,
    ) -> None:
        """Overwrite a queued mutation with a newer one for the same record."""
        conn = self._ensure_connected()
        conn.execute(
            """
            UPDATE sync_queue
            SET operation = ?, payload = ?, created_at = ?
            WHERE id = ?
            """,
            (
                operation,
                json.dumps(payload) if payload is not None else None,
                _timestamp(created_at),
                queue_id,
            ),
        )
        conn.commit()

    def mark_queue_retry(
        self, queue_id: str, retry_count: int, next_retry_at: datetime
    ) -> None:
        conn = self._ensure_connected()
        conn.execute(
            "UPDATE sync_queue SET retry_count = ?, next_retry_at = ? WHERE id = ?",
            (retry_count, _timestamp(next_retry_at), queue_id),
        )
        conn.commit()

    def delete_queue_item(self, queue_id: str) -> None:
        conn = self._ensure_connected()
        conn.execute("DELETE FROM sync_queue WHERE id = ?", (queue_id,))
        conn.commit()

    def list_queue_items(self) -> list[QueueItem]:
        """All queued mutations, oldest first."""
        conn = self._ensure_connected()
        cursor = conn.execute(
            "SELECT * FROM sync_queue ORDER BY created_at ASC, rowid ASC"
        )
        return [self._row_to_queue_item(row) for row in cursor]

    def count_queue_items(self) -> int:
        conn = self._ensure_connected()
        return conn.execute("SELECT COUNT(*) FROM sync_queue").fetchone()[0]

    # ==================== Entitlement Cache ====================

    def get_entitlement_entry(self, user_id: str) -> str | None:
        """Raw cached entitlement JSON for a user."""
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT entry FROM entitlement_cache WHERE user_id = ?", (user_id,)
        ).fetchone()
        return row["entry"] if row else None

    def put_entitlement_entry(self, user_id: str, entry: str) -> None:
        conn = self._ensure_connected()
        conn.execute(
            """
            INSERT INTO entitlement_cache (user_id, entry) VALUES (?, ?)
            ON CONFLICT(user_id) DO UPDATE SET entry = excluded.entry
            """,
            (user_id, entry),
        )
        conn.commit()

    def delete_entitlement_entry(self, user_id: str | None = None) -> None:
        """Delete one user's cached entitlement, or all of them."""
        conn = self._ensure_connected()
        if user_id is None:
            conn.execute("DELETE FROM entitlement_cache")
        else:
            conn.execute("DELETE FROM entitlement_cache WHERE user_id = ?", (user_id,))
        conn.commit()

    # ==================== Metadata ====================

    def get_meta(self, key: str) -> str | None:
        conn = self._ensure_connected()
        row = conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_meta(self, key: str, value: str) -> None:
        conn = self._ensure_connected()
        conn.execute(
            """
            INSERT INTO meta (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )
        conn.commit()

    # ==================== Backup ====================

    def export_data(self) -> str:
        """Export the multi-row collections as a JSON backup document."""
        data: dict[str, Any] = {
            c.value: [r.to_dict() for r in self.table(c).to_array()]
            for c in MULTI_ROW_COLLECTIONS
        }
        data["exported_at"] = format_datetime(utcnow())
        data["version"] = BACKUP_VERSION
        return json.dumps(data, indent=2)

    def import_data(self, json_string: str) -> ImportResult:
        """Replace the multi-row collections with the contents of a backup.

        The restore runs in a single transaction; on any failure the
        existing data is left untouched.
        """
        try:
            data = json.loads(json_string)
        except json.JSONDecodeError as e:
            return ImportResult(success=False, error=f"Invalid JSON: {e}")

        if not isinstance(data, dict) or not data.get("version") or (
            Collection.EXERCISES.value not in data
        ):
            return ImportResult(success=False, error="Invalid backup file format")

        for collection in MULTI_ROW_COLLECTIONS:
            items = data.get(collection.value) or []
            if not isinstance(items, list) or not all(
                isinstance(item, dict) for item in items
            ):
                return ImportResult(
                    success=False,
                    error=f"Invalid backup file format: {collection.value}",
                )

        conn = self._ensure_connected()
        imported = 0
        try:
            with conn:
                for collection in MULTI_ROW_COLLECTIONS:
                    record_type = RECORD_TYPES[collection]
                    conn.execute(f"DELETE FROM {collection.value}")
                    for item in data.get(collection.value) or []:
                        record = record_type.from_dict(item)
                        serialized = record.to_dict()
                        conn.execute(
                            f"INSERT INTO {collection.value} (id, data, updated_at) "
                            "VALUES (?, ?, ?)",
                            (
                                record.id,
                                json.dumps(serialized),
                                serialized.get("updated_at"),
                            ),
                        )
                        imported += 1
        except (sqlite3.Error, AttributeError, TypeError, ValueError, KeyError) as e:
            logger.error(f"Backup import failed: {e}")
            return ImportResult(success=False, error=str(e))

        logger.info(f"Imported {imported} records from backup")
        return ImportResult(success=True, imported=imported)

    def get_stats(self) -> dict[str, Any]:
        """Get record and queue counts."""
        stats: dict[str, Any] = {
            c.value: self.table(c).count() for c in Collection
        }
        stats["queued_operations"] = self.count_queue_items()
        if self.db_path.exists():
            stats["db_size_mb"] = round(
                self.db_path.stat().st_size / (1024 * 1024), 2
            )
        return stats
