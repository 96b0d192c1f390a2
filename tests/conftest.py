"""Shared fixtures: a real SQLite-backed store and a small in-memory Supabase stand-in."""

from __future__ import annotations

import copy
import uuid
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Optional

import pytest
from postgrest.exceptions import APIError

import identity_link.config as config_module
from identity_link.config import AppConfig
from identity_link.database import DatabaseManager
from identity_link.logger import StructuredLogger
from identity_link.repositories.user_repository import UserRepository
from identity_link.schema import initialize_schema
from identity_link.services.consent import ConsentEvaluator
from identity_link.services.identity_linker import IdentityLinkerService

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep log files and the cached config out of the working tree."""
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "logs" / "identity_link.log"))
    monkeypatch.setattr(config_module, "_config_instance", None)


@pytest.fixture
def logger(tmp_path: Path) -> StructuredLogger:
    return StructuredLogger(
        name=f"test-{uuid.uuid4().hex}",
        log_file=str(tmp_path / "test.log"),
        max_bytes=1_000_000,
        backup_count=1,
    )


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        EMAIL_CONSENT_VERSION="v2",
        GITHUB_CLIENT_ID="client-id",
        GITHUB_CLIENT_SECRET="client-secret",
        GITHUB_CALLBACK_URL="https://example.test/auth/github/callback",
    )


@pytest.fixture
def db(tmp_path: Path, logger: StructuredLogger):
    manager = DatabaseManager(
        supabase_url="",
        supabase_key="",
        sqlite_path=tmp_path / "users.db",
        logger=logger,
    )
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture
def repo(db: DatabaseManager, logger: StructuredLogger) -> UserRepository:
    return UserRepository(db=db, logger=logger)


@pytest.fixture
def consent(config: AppConfig, logger: StructuredLogger) -> ConsentEvaluator:
    return ConsentEvaluator(session_key=config.EMAIL_CONSENT_SESSION_KEY, logger=logger)


@pytest.fixture
def linker(
    repo: UserRepository,
    consent: ConsentEvaluator,
    config: AppConfig,
    logger: StructuredLogger,
    db: DatabaseManager,
) -> IdentityLinkerService:
    return IdentityLinkerService(
        repo=repo,
        consent=consent,
        config=config,
        logger=logger,
        audit_db=db,
        clock=lambda: FIXED_NOW,
    )


def github_payload(
    github_id: str = "583231",
    avatar: Optional[str] = "https://avatars.githubusercontent.com/u/583231?v=4",
    email: Optional[str] = "Octocat@GitHub.com ",
    verified: bool = True,
) -> dict[str, object]:
    """Raw profile payload as handed over by the GitHub strategy."""
    payload: dict[str, object] = {
        "id": github_id,
        "username": "octocat",
        "displayName": "The Octocat",
        "photos": [{"value": avatar}] if avatar is not None else [],
        "emails": [{"value": email, "verified": verified}] if email is not None else [],
    }
    return payload


# ---------------------------------------------------------------------------
# In-memory Supabase stand-in (only the query chains the repository uses)
# ---------------------------------------------------------------------------


class FakeSupabase:
    """Implements ``table().select().eq().maybe_single().execute()``,
    ``table().insert().execute()`` and ``table().update().eq().execute()``
    with a unique constraint on ``github_id``.
    """

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, object]] = {}
        self.down: bool = False
        self.calls: list[str] = []

    def table(self, name: str) -> "_FakeQuery":
        if self.down:
            raise ConnectionError("supabase unreachable")
        return _FakeQuery(self, name)


class _FakeQuery:
    def __init__(self, client: FakeSupabase, table: str) -> None:
        self._client = client
        self._table = table
        self._op: Optional[str] = None
        self._payload: dict[str, object] = {}
        self._filters: list[tuple[str, object]] = []
        self._single: bool = False

    def select(self, _columns: str) -> "_FakeQuery":
        self._op = "select"
        return self

    def insert(self, row: dict[str, object]) -> "_FakeQuery":
        self._op = "insert"
        self._payload = dict(row)
        return self

    def update(self, changes: dict[str, object]) -> "_FakeQuery":
        self._op = "update"
        self._payload = dict(changes)
        return self

    def eq(self, column: str, value: object) -> "_FakeQuery":
        self._filters.append((column, value))
        return self

    def maybe_single(self) -> "_FakeQuery":
        self._single = True
        return self

    def _matches(self) -> list[dict[str, object]]:
        return [
            row
            for row in self._client.rows.values()
            if all(row.get(column) == value for column, value in self._filters)
        ]

    def execute(self) -> Optional[SimpleNamespace]:
        self._client.calls.append(self._op or "")
        if self._op == "select":
            found = self._matches()
            if self._single:
                return SimpleNamespace(data=copy.deepcopy(found[0])) if found else None
            return SimpleNamespace(data=copy.deepcopy(found))

        if self._op == "insert":
            github_id = self._payload.get("github_id")
            if any(row["github_id"] == github_id for row in self._client.rows.values()):
                raise APIError(
                    {
                        "code": "23505",
                        "message": 'duplicate key value violates unique constraint "users_github_id_key"',
                    }
                )
            row = dict(self._payload)
            row.setdefault("id", str(uuid.uuid4()))
            self._client.rows[str(row["id"])] = row
            return SimpleNamespace(data=[copy.deepcopy(row)])

        if self._op == "update":
            updated = []
            for row in self._matches():
                row.update(self._payload)
                updated.append(copy.deepcopy(row))
            return SimpleNamespace(data=updated)

        raise AssertionError(f"unexpected operation {self._op}")


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def online_db(tmp_path: Path, logger: StructuredLogger, fake_supabase: FakeSupabase):
    manager = DatabaseManager(
        supabase_url="",
        supabase_key="",
        sqlite_path=tmp_path / "cache.db",
        logger=logger,
        supabase_client=fake_supabase,
    )
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture
def online_repo(online_db: DatabaseManager, logger: StructuredLogger) -> UserRepository:
    return UserRepository(db=online_db, logger=logger)


@pytest.fixture
def make_payload():
    return github_payload


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW
