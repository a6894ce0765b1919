"""
Local Database Connection Manager.

Owns the single SQLite connection that backs the client's durable
storage (credentials and the session snapshot).  This module only
manages the raw *connection*; key-value semantics live in
:mod:`fixrx.services.key_value_store`.

Usage (dependency injection at app startup)::

    from fixrx.database import DatabaseManager
    from fixrx.logger import StructuredLogger

    db = DatabaseManager(
        sqlite_path=Path(config.STORAGE_PATH),
        logger=StructuredLogger(name="fixrx.database"),
    )
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

from fixrx.logger import StructuredLogger


class DatabaseManager:
    """Manages the connection to the local SQLite database.

    Fully configured at construction time via dependency injection.

    Parameters
    ----------
    sqlite_path:
        Filesystem path for the SQLite database file, or ``":memory:"``.
    logger:
        A ``StructuredLogger`` instance for structured JSON log output.
    """

    def __init__(self, sqlite_path: Path | str, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger
        self._write_lock: threading.RLock = threading.RLock()
        self._closed: bool = False
        self._sqlite_conn: sqlite3.Connection = self._connect_sqlite(sqlite_path)

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Return the initialised SQLite connection."""
        return self._sqlite_conn

    @property
    def write_lock(self) -> threading.RLock:
        """Return the write lock for thread-safe SQLite operations.

        All code that performs SQLite writes should acquire this lock
        first::

            with db.write_lock:
                db.sqlite.execute("INSERT ...")
                db.sqlite.commit()
        """
        return self._write_lock

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the local SQLite connection.

        Safe to call multiple times; subsequent calls are no-ops.
        """
        with self._write_lock:
            if self._closed:
                return
            try:
                self._sqlite_conn.close()
                self._logger.info("SQLite connection closed.")
            except sqlite3.ProgrammingError:
                pass
            self._closed = True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _connect_sqlite(self, path: Path | str) -> sqlite3.Connection:
        """Open (or create) a SQLite database.

        Re-raises ``PermissionError`` with a user-friendly message when the
        file or its directory is locked or read-only.

        Raises
        ------
        PermissionError
            If the OS denies access to the database file or its directory.
        """
        try:
            conn = sqlite3.connect(str(path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            if str(path) != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL;")
            self._logger.info("SQLite database opened at %s", path)
            return conn
        except PermissionError as exc:
            msg = (
                f"Cannot open the local database at '{path}'. "
                "The file or its directory may be read-only or locked by "
                "another process.  Please check file permissions and try again."
            )
            self._logger.error(msg)
            raise PermissionError(msg) from exc
