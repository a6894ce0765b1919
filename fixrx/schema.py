"""
Centralized SQLite Schema Initialization.

Defines the local storage schema and a single entry-point,
:func:`initialize_schema`, that creates all tables idempotently.  A
``schema_version`` row records what has been applied so later versions
can migrate forward.

Usage::

    from fixrx.database import DatabaseManager
    from fixrx.schema import initialize_schema

    initialize_schema(db.sqlite, logger)
"""

from __future__ import annotations

import sqlite3

from fixrx.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "initialize_schema"]

CURRENT_SCHEMA_VERSION: int = 1

_TABLE_DEFINITIONS: list[str] = [
    # -- single-row version tracker -------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- durable key-value namespaces (credentials, session snapshot) ---------
    """
    CREATE TABLE IF NOT EXISTS kv_store (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the applied schema version, ``0`` for a fresh database."""
    try:
        row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    except sqlite3.OperationalError:
        return 0
    return int(row[0]) if row is not None else 0


def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Create all tables if missing and stamp the schema version.

    Idempotent: safe to call on every startup.  The whole run happens in
    one transaction so a failure leaves the previous version intact.
    """
    version = _get_schema_version(conn)
    if version >= CURRENT_SCHEMA_VERSION:
        logger.debug("Schema up to date (version %d).", version)
        return

    try:
        for ddl in _TABLE_DEFINITIONS:
            conn.execute(ddl)
        conn.execute(
            """
            INSERT INTO schema_version (id, version) VALUES (1, ?)
            ON CONFLICT(id) DO UPDATE SET
                version    = excluded.version,
                applied_at = CURRENT_TIMESTAMP
            """,
            (CURRENT_SCHEMA_VERSION,),
        )
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        logger.error("Schema initialisation failed; rolled back.", exc_info=True)
        raise

    logger.info(
        "Schema initialised: version %d -> %d.", version, CURRENT_SCHEMA_VERSION,
    )
