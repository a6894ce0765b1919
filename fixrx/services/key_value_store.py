"""
Durable Key-Value Storage.

Every durable read/write in the session core goes through the narrow
:class:`KeyValueStore` interface (``get`` / ``set`` / ``remove``), so
tests and ephemeral sessions can substitute :class:`InMemoryKeyValueStore`
for the SQLite-backed store.

Unlike a preferences table, a failed read or write here is never
swallowed: stale or half-written credentials are worse than a loud
failure, so every storage problem surfaces as :class:`StorageError`.

The ``kv_store`` table is created by :func:`fixrx.schema.initialize_schema`::

    CREATE TABLE IF NOT EXISTS kv_store (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""

from __future__ import annotations

import sqlite3
import threading
from typing import Optional, Protocol, runtime_checkable

from fixrx.database import DatabaseManager
from fixrx.errors import StorageError
from fixrx.logger import StructuredLogger


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal durable string storage."""

    def get(self, key: str) -> Optional[str]: ...  # noqa: E704

    def set(self, key: str, value: str) -> None: ...  # noqa: E704

    def remove(self, key: str) -> None: ...  # noqa: E704


class InMemoryKeyValueStore:
    """Process-local store used by tests and ``--ephemeral`` sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock: threading.Lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def dump(self) -> dict[str, str]:
        """Copy of the raw contents, for assertions."""
        with self._lock:
            return dict(self._data)


class SQLiteKeyValueStore:
    """``KeyValueStore`` backed by the local SQLite ``kv_store`` table.

    Parameters
    ----------
    db:
        Initialised ``DatabaseManager`` whose schema has been created.
    logger:
        Structured logger instance.
    """

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    def get(self, key: str) -> Optional[str]:
        """Read a value by key.  Returns ``None`` if not found."""
        try:
            row = self._db.sqlite.execute(
                "SELECT value FROM kv_store WHERE key = ?",
                (key,),
            ).fetchone()
        except sqlite3.Error as exc:
            self._logger.error("Failed to read kv_store[%s]: %s", key, exc)
            raise StorageError(f"Could not read '{key}' from local storage.") from exc
        return row["value"] if row is not None else None

    def set(self, key: str, value: str) -> None:
        """Upsert a value in a single committed statement."""
        try:
            with self._db.write_lock:
                self._db.sqlite.execute(
                    """
                    INSERT INTO kv_store (key, value)
                    VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value      = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (key, value),
                )
                self._db.sqlite.commit()
        except sqlite3.Error as exc:
            self._logger.error("Failed to write kv_store[%s]: %s", key, exc)
            raise StorageError(f"Could not write '{key}' to local storage.") from exc
        self._logger.debug("kv_store[%s] updated.", key)

    def remove(self, key: str) -> None:
        """Delete a key.  Safe to call when the key does not exist."""
        try:
            with self._db.write_lock:
                self._db.sqlite.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                self._db.sqlite.commit()
        except sqlite3.Error as exc:
            self._logger.error("Failed to delete kv_store[%s]: %s", key, exc)
            raise StorageError(f"Could not remove '{key}' from local storage.") from exc
        self._logger.debug("kv_store[%s] removed.", key)
