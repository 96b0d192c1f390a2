"""
SQLite Schema Initialization.

Defines the canonical schema of the local database and provides a single
entry-point -- :func:`initialize_schema` -- that creates all tables
idempotently.  A ``schema_version`` table tracks applied migrations so
schema changes roll forward without data loss.

- **Fresh databases** (version 0): all tables are created in one shot from
  :data:`_TABLE_DEFINITIONS`.
- **Existing databases** (version N > 0): only the migrations registered in
  :data:`_MIGRATIONS` for versions in ``(N, CURRENT_SCHEMA_VERSION]`` run.
- The upgrade (migrations + version bump) is one SQLite transaction.

The Supabase ``users`` table must mirror the ``users`` DDL below,
including the unique constraint on ``github_id``.

Usage::

    from identity_link.schema import initialize_schema

    initialize_schema(db.sqlite, StructuredLogger(name="schema"))
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable

from identity_link.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "initialize_schema"]

CURRENT_SCHEMA_VERSION: int = 2

_TABLE_DEFINITIONS: list[str] = [
    # -- linked GitHub identities ---------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        github_id TEXT NOT NULL UNIQUE,
        github_username TEXT,
        github_display_name TEXT,
        github_image_url TEXT,
        email TEXT,
        email_consent_date TEXT,
        email_consent_ip TEXT,
        email_consent_version TEXT,
        created_at TEXT,
        updated_at TEXT
    )
    """,
    # -- persistent structured audit trail ------------------------------------
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        actor_id TEXT NOT NULL,
        details TEXT DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

_ALLOWED_TABLES: frozenset[str] = frozenset({"schema_version", "users", "audit_log"})
"""Tables that may be referenced in dynamic PRAGMA queries."""


def _ensure_version_table(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            version INTEGER NOT NULL,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.commit()


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the current schema version, or ``0`` if unset."""
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return row[0] if row is not None else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Upsert the single-row version tracker.  Does **not** commit."""
    conn.execute(
        """
        INSERT INTO schema_version (id, version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                      applied_at = CURRENT_TIMESTAMP
        """,
        (version,),
    )


def _create_all_tables(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    for ddl in _TABLE_DEFINITIONS:
        conn.execute(ddl)
    logger.info("All %d tables created or verified successfully.", len(_TABLE_DEFINITIONS))


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    """Check whether *column* already exists in *table*.

    Raises:
        ValueError: If *table* is not in :data:`_ALLOWED_TABLES`.
    """
    if table not in _ALLOWED_TABLES:
        raise ValueError(
            f"Invalid table name: {table!r}. "
            f"Allowed tables: {sorted(_ALLOWED_TABLES)}"
        )
    cursor = conn.execute(f"PRAGMA table_info({table})")
    return any(row[1] == column for row in cursor.fetchall())


def _migrate_v1_to_v2(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Add the email consent triple to ``users``.

    Version 1 stored ``email`` without consent metadata.  The new columns
    are nullable; rows written before the migration keep ``NULL`` consent
    fields and their ``email`` is cleared, because an address without a
    recorded consent must not be retained.

    Does **not** commit.
    """
    for column in ("email_consent_date", "email_consent_ip", "email_consent_version"):
        if not _column_exists(conn, "users", column):
            conn.execute(f"ALTER TABLE users ADD COLUMN {column} TEXT")
    cleared = conn.execute(
        "UPDATE users SET email = NULL "
        "WHERE email IS NOT NULL AND email_consent_date IS NULL"
    ).rowcount
    logger.info(
        "Migration v1→v2: added consent columns to users; cleared %d "
        "email(s) without consent.",
        cleared,
    )


_MIGRATIONS: dict[int, Callable[[sqlite3.Connection, StructuredLogger], None]] = {
    2: _migrate_v1_to_v2,
}


def _run_incremental_migrations(
    conn: sqlite3.Connection,
    logger: StructuredLogger,
    from_version: int,
    to_version: int,
) -> None:
    for version in range(from_version + 1, to_version + 1):
        migration = _MIGRATIONS.get(version)
        if migration is not None:
            migration(conn, logger)


def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Ensure the local SQLite database matches the current schema version.

    Idempotent; call on every startup.  On failure the whole upgrade is
    rolled back and the error re-raised.
    """
    _ensure_version_table(conn)
    current: int = _get_schema_version(conn)

    if current >= CURRENT_SCHEMA_VERSION:
        logger.info("Schema is up to date (version %d).", current)
        return

    logger.info("Upgrading schema from version %d to %d.", current, CURRENT_SCHEMA_VERSION)

    try:
        if current == 0:
            _create_all_tables(conn, logger)
        else:
            _run_incremental_migrations(conn, logger, current, CURRENT_SCHEMA_VERSION)

        _set_schema_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except Exception:
        conn.rollback()
        logger.error("Schema migration failed; rolled back to version %d.", current)
        raise

    logger.info("Schema initialised at version %d.", CURRENT_SCHEMA_VERSION)
