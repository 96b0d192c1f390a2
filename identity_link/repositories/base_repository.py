"""
Base Repository.

Provides shared infrastructure for all repositories:
- DatabaseManager reference (Supabase + SQLite)
- Logger reference
- The authority-first read pattern with a SQLite cache fallback
"""

from __future__ import annotations

import sqlite3
from typing import Callable, Optional, TypeVar

from supabase import Client as SupabaseClient

from identity_link.database import DatabaseManager
from identity_link.exceptions import UserLookupError
from identity_link.logger import StructuredLogger

T = TypeVar("T")


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def supabase(self) -> SupabaseClient:
        return self._db.supabase

    @property
    def sqlite(self) -> sqlite3.Connection:
        return self._db.sqlite

    @property
    def is_online(self) -> bool:
        """``True`` when Supabase is the authoritative store."""
        return self._db.is_online

    def _read(
        self,
        supabase_op: Callable[[], Optional[T]],
        sqlite_op: Callable[[], Optional[T]],
        *,
        operation_name: str,
        on_supabase_success: Optional[Callable[[T], None]] = None,
    ) -> Optional[T]:
        """Execute a single-record read against the authoritative store.

        Online:
        1. ``supabase_op()`` answers, including "not found" (``None``).
           A hit is handed to ``on_supabase_success`` (cache warming);
           callback failures are logged and never mask the result.
        2. If Supabase raises, ``sqlite_op()`` may still serve a cached
           hit.  A cache miss cannot prove absence, so it raises.

        Offline: ``sqlite_op()`` is authoritative.

        Raises
        ------
        UserLookupError
            When no store can give an authoritative answer.
        """
        if not self.is_online:
            try:
                with self._db.write_lock:
                    return sqlite_op()
            except sqlite3.Error as exc:
                self._logger.error("SQLite query failed for %s: %s", operation_name, exc)
                raise UserLookupError(
                    f"Lookup failed for {operation_name}", original_error=exc,
                ) from exc

        try:
            result = supabase_op()
        except Exception as exc:
            self._logger.warning("Supabase unavailable for %s: %s", operation_name, exc)
            cached: Optional[T] = None
            try:
                with self._db.write_lock:
                    cached = sqlite_op()
            except sqlite3.Error as sqlite_exc:
                self._logger.error(
                    "SQLite fallback also failed for %s: %s", operation_name, sqlite_exc,
                )
            if cached is not None:
                return cached
            raise UserLookupError(
                f"Lookup failed for {operation_name}", original_error=exc,
            ) from exc

        if result is not None and on_supabase_success is not None:
            try:
                on_supabase_success(result)
            except Exception as cache_exc:
                self._logger.warning(
                    "Post-Supabase callback failed for %s: %s", operation_name, cache_exc,
                )
        return result

    def _rollback(self) -> None:
        """Roll back a failed SQLite write.

        Called from ``except`` blocks; a rollback failure is logged so it
        never replaces the original error.
        """
        try:
            self.sqlite.rollback()
        except sqlite3.Error as exc:
            self._logger.warning("SQLite rollback failed: %s", exc)
