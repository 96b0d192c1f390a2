"""
User Repository.

Persists linked GitHub identities.  Supabase is authoritative when
configured, with SQLite as a read cache; otherwise SQLite is the store.
Both enforce ``UNIQUE (github_id)``, which is what keeps concurrent first
logins from creating two users.
"""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Optional

from postgrest.exceptions import APIError

from identity_link.database import DatabaseManager
from identity_link.exceptions import UserConflictError, UserPersistenceError
from identity_link.logger import StructuredLogger
from identity_link.models.user import USER_COLUMNS, User
from identity_link.repositories.base_repository import BaseRepository

# PostgreSQL unique_violation
_PG_UNIQUE_VIOLATION: str = "23505"
# PostgREST answer for maybe_single() with zero rows on older clients
_PGRST_NO_CONTENT: str = "204"


class UserRepository(BaseRepository):
    """Data access layer for User entities.

    There is no ``delete()``: retention of user records and consent
    metadata is handled by an external scheduled job.
    """

    TABLE = "users"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_github_id(self, github_id: str) -> Optional[User]:
        """Fetch the user linked to *github_id*, or ``None``.

        Raises:
            UserLookupError: If no store can answer.
        """
        return self._find_one("github_id", github_id)

    def get_by_id(self, user_id: str) -> Optional[User]:
        """Fetch a user by local id, or ``None``.

        Raises:
            UserLookupError: If no store can answer.
        """
        return self._find_one("id", user_id)

    def _find_one(self, column: str, value: str) -> Optional[User]:
        def _supabase() -> Optional[User]:
            try:
                response = (
                    self.supabase.table(self.TABLE)
                    .select("*")
                    .eq(column, value)
                    .maybe_single()
                    .execute()
                )
            except APIError as exc:
                if exc.code == _PGRST_NO_CONTENT:
                    return None
                raise
            if response is None or not response.data:
                return None
            return User.from_row(response.data)

        def _sqlite() -> Optional[User]:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE {column} = ?", (value,)
            ).fetchone()
            return User.from_row(dict(row)) if row else None

        return self._read(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            operation_name=f"find by {column} ({self.TABLE})",
            on_supabase_success=self._cache_to_sqlite,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, user: User) -> User:
        """Insert a fully constructed user in a single write.

        The store assigns ``id`` and both timestamps.

        Raises:
            UserConflictError: If a user with the same ``github_id`` exists.
            UserPersistenceError: For any other write failure.
        """
        now = datetime.now(timezone.utc)
        record = user.model_copy(update={"created_at": now, "updated_at": now})

        if self.is_online:
            return self._create_supabase(record)
        return self._create_sqlite(record.model_copy(update={"id": record.id or str(uuid.uuid4())}))

    def _create_supabase(self, record: User) -> User:
        row = record.to_row()
        if row["id"] is None:
            del row["id"]  # gen_random_uuid() default

        try:
            response = self.supabase.table(self.TABLE).insert(row).execute()
        except APIError as exc:
            if exc.code == _PG_UNIQUE_VIOLATION:
                raise UserConflictError(
                    f"User with github_id {record.github.id} already exists",
                    original_error=exc,
                ) from exc
            raise UserPersistenceError(
                f"Failed to create user for github_id {record.github.id}",
                original_error=exc,
            ) from exc
        except Exception as exc:
            raise UserPersistenceError(
                f"Failed to create user for github_id {record.github.id}",
                original_error=exc,
            ) from exc

        if not response.data:
            raise UserPersistenceError(
                f"Supabase returned no row for created github_id {record.github.id}"
            )

        created = User.from_row(response.data[0])
        self._cache_to_sqlite(created)
        self._logger.info("User created: %s (github_id %s)", created.id, created.github.id)
        return created

    def _create_sqlite(self, record: User) -> User:
        row = record.to_row()
        placeholders = ", ".join("?" for _ in USER_COLUMNS)
        with self._db.write_lock:
            try:
                self.sqlite.execute(
                    f"INSERT INTO {self.TABLE} ({', '.join(USER_COLUMNS)}) "
                    f"VALUES ({placeholders})",
                    tuple(row[column] for column in USER_COLUMNS),
                )
                self.sqlite.commit()
            except sqlite3.IntegrityError as exc:
                self._rollback()
                if "github_id" in str(exc):
                    raise UserConflictError(
                        f"User with github_id {record.github.id} already exists",
                        original_error=exc,
                    ) from exc
                raise UserPersistenceError(
                    f"Failed to create user for github_id {record.github.id}",
                    original_error=exc,
                ) from exc
            except sqlite3.Error as exc:
                self._rollback()
                raise UserPersistenceError(
                    f"Failed to create user for github_id {record.github.id}",
                    original_error=exc,
                ) from exc

        self._logger.info("User created: %s (github_id %s)", record.id, record.github.id)
        return record

    def update(self, user: User) -> User:
        """Write the mutable profile column (``github_image_url``) of *user*.

        Email and consent columns are never part of an update.

        Raises:
            UserPersistenceError: If the write fails or no row matches.
        """
        if user.id is None:
            raise UserPersistenceError("Cannot update a user that has no id")

        now = datetime.now(timezone.utc)
        changes: dict[str, Optional[str]] = {
            "github_image_url": user.github.image_url,
            "updated_at": now.isoformat(),
        }

        if self.is_online:
            try:
                response = (
                    self.supabase.table(self.TABLE)
                    .update(changes)
                    .eq("id", user.id)
                    .execute()
                )
            except Exception as exc:
                raise UserPersistenceError(
                    f"Failed to update user {user.id}", original_error=exc,
                ) from exc
            if not response.data:
                raise UserPersistenceError(f"User {user.id} not found for update")
            updated = User.from_row(response.data[0])
            self._cache_to_sqlite(updated)
            return updated

        with self._db.write_lock:
            try:
                cursor = self.sqlite.execute(
                    f"UPDATE {self.TABLE} SET github_image_url = ?, updated_at = ? WHERE id = ?",
                    (changes["github_image_url"], changes["updated_at"], user.id),
                )
                self.sqlite.commit()
            except sqlite3.Error as exc:
                self._rollback()
                raise UserPersistenceError(
                    f"Failed to update user {user.id}", original_error=exc,
                ) from exc

        if cursor.rowcount == 0:
            raise UserPersistenceError(f"User {user.id} not found for update")
        return user.model_copy(update={"updated_at": now})

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _cache_to_sqlite(self, user: User) -> None:
        """Mirror a Supabase row into the local cache.

        Failures are logged, never raised: a cache failure must not mask a
        successful Supabase operation.
        """
        row = user.to_row()
        placeholders = ", ".join("?" for _ in USER_COLUMNS)
        assignments = ", ".join(
            f"{column} = excluded.{column}" for column in USER_COLUMNS if column != "id"
        )
        with self._db.write_lock:
            try:
                self.sqlite.execute(
                    f"INSERT INTO {self.TABLE} ({', '.join(USER_COLUMNS)}) "
                    f"VALUES ({placeholders}) "
                    f"ON CONFLICT(id) DO UPDATE SET {assignments}",
                    tuple(row[column] for column in USER_COLUMNS),
                )
                self.sqlite.commit()
            except sqlite3.Error as exc:
                self._rollback()
                self._logger.warning(
                    "Failed to cache user %s to SQLite (non-fatal): %s", user.id, exc,
                )
