"""
Database Abstraction Layer.

Two stores back the user record:

- **Supabase (cloud PostgreSQL)**: the authoritative store when
  configured.  The ``users`` table carries a unique constraint on
  ``github_id``.

- **SQLite (local)**: always open.  Serves as the read cache in front of
  Supabase, and as the authoritative store when Supabase is not
  configured (local development, tests, single-node deployments).

Data access is performed through the Repository pattern.  This module only
manages the raw database *connections*; it contains no query logic.

Usage (dependency injection at startup)::

    from identity_link.database import DatabaseManager
    from identity_link.logger import StructuredLogger

    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        sqlite_path=config.SQLITE_PATH,
        logger=StructuredLogger(name="database"),
    )
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Optional, Union

from supabase import Client as SupabaseClient
from supabase import create_client

from identity_link.logger import StructuredLogger


class DatabaseManager:
    """Manages connections to the local SQLite database and the Supabase instance.

    Fully configured at construction time.  When ``supabase_url`` or
    ``supabase_key`` is empty the Supabase client is not created and
    :attr:`is_online` is ``False``.

    The SQLite connection is shared across request threads
    (``check_same_thread=False``); every write must hold
    :attr:`write_lock`.

    Parameters
    ----------
    supabase_url:
        The Supabase project URL.  May be empty.
    supabase_key:
        The Supabase key.  May be empty.
    sqlite_path:
        Filesystem path for the local SQLite database file, or
        ``":memory:"``.
    logger:
        A ``StructuredLogger`` instance.
    supabase_client:
        A ready-made client; takes precedence over ``supabase_url`` /
        ``supabase_key``.
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        sqlite_path: Union[Path, str],
        logger: StructuredLogger,
        supabase_client: Optional[SupabaseClient] = None,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._write_lock: threading.RLock = threading.RLock()

        self._supabase: Optional[SupabaseClient] = supabase_client
        if self._supabase is None and supabase_url and supabase_key:
            try:
                self._supabase = create_client(supabase_url, supabase_key)
                self._logger.info("Supabase client initialized.")
            except (ValueError, TypeError) as exc:
                self._logger.warning(
                    "Supabase credential format error: %s. Using the local store only.",
                    exc,
                )
            except Exception as exc:
                self._logger.error(
                    "Unexpected Supabase initialization failure: %s. "
                    "Using the local store only.",
                    exc,
                    exc_info=True,
                )
        elif self._supabase is None:
            self._logger.warning(
                "Supabase credentials not configured; SQLite is the user store."
            )

        self._sqlite_conn: sqlite3.Connection = self._connect_sqlite(sqlite_path)
        self._closed: bool = False

    @property
    def supabase(self) -> SupabaseClient:
        """Return the initialised Supabase client.

        Raises
        ------
        RuntimeError
            If no Supabase client is configured.
        """
        if self._supabase is None:
            raise RuntimeError(
                "Supabase client is not initialised. "
                "SQLite is the authoritative user store."
            )
        return self._supabase

    @property
    def is_online(self) -> bool:
        """``True`` when the Supabase client is available."""
        return self._supabase is not None

    @property
    def sqlite(self) -> sqlite3.Connection:
        return self._sqlite_conn

    @property
    def write_lock(self) -> threading.RLock:
        """Lock guarding SQLite writes::

            with db.write_lock:
                db.sqlite.execute("INSERT ...")
                db.sqlite.commit()
        """
        return self._write_lock

    def close(self) -> None:
        """Close the local SQLite connection.  Safe to call multiple times."""
        with self._write_lock:
            if self._closed:
                return
            self._sqlite_conn.close()
            self._closed = True
            self._logger.info("SQLite connection closed.")

    def _connect_sqlite(self, path: Union[Path, str]) -> sqlite3.Connection:
        """Open (or create) the SQLite database.

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
                "another process."
            )
            self._logger.error(msg)
            raise PermissionError(msg) from exc
