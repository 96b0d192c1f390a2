from __future__ import annotations

from datetime import datetime, timezone

import pytest

from identity_link.exceptions import UserConflictError, UserLookupError, UserPersistenceError
from identity_link.models.user import GitHubIdentity, User
from identity_link.repositories.user_repository import UserRepository


def _new_user(github_id: str = "100", image_url: str = "https://a.test/100.png") -> User:
    return User(
        github=GitHubIdentity(id=github_id, username="mona", display_name="Mona", image_url=image_url),
        email="mona@example.com",
        email_consent_date=datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
        email_consent_ip="203.0.113.0",
        email_consent_version="v2",
    )


# ---------------------------------------------------------------------------
# SQLite as the authoritative store
# ---------------------------------------------------------------------------


def test_create_assigns_id_and_timestamps(repo: UserRepository) -> None:
    created = repo.create(_new_user())
    assert created.id
    assert created.created_at is not None
    assert created.created_at == created.updated_at

    found = repo.find_by_github_id("100")
    assert found == created
    assert repo.get_by_id(created.id) == created


def test_find_unknown_identity_returns_none(repo: UserRepository) -> None:
    assert repo.find_by_github_id("nope") is None
    assert repo.get_by_id("nope") is None


def test_duplicate_github_id_is_a_conflict(repo: UserRepository, db) -> None:
    repo.create(_new_user())
    with pytest.raises(UserConflictError):
        repo.create(_new_user(image_url="https://a.test/other.png"))

    count = db.sqlite.execute("SELECT COUNT(*) FROM users").fetchone()[0]
    assert count == 1


def test_update_writes_only_the_avatar(repo: UserRepository) -> None:
    created = repo.create(_new_user())
    tampered = created.model_copy(
        update={
            "github": created.github.model_copy(update={"image_url": "https://a.test/new.png", "username": "x"}),
            "email_consent_version": "v9",
        }
    )

    repo.update(tampered)

    stored = repo.get_by_id(created.id)
    assert stored.github.image_url == "https://a.test/new.png"
    assert stored.github.username == "mona"
    assert stored.email_consent_version == "v2"
    assert stored.email == "mona@example.com"


def test_update_of_missing_user_fails(repo: UserRepository) -> None:
    ghost = _new_user().model_copy(update={"id": "missing"})
    with pytest.raises(UserPersistenceError):
        repo.update(ghost)


def test_update_requires_an_id(repo: UserRepository) -> None:
    with pytest.raises(UserPersistenceError):
        repo.update(_new_user())


def test_lookup_on_closed_database_is_a_lookup_error(repo: UserRepository, db) -> None:
    db.close()
    with pytest.raises(UserLookupError):
        repo.find_by_github_id("100")


def test_create_on_closed_database_is_a_persistence_error(repo: UserRepository, db) -> None:
    db.close()
    with pytest.raises(UserPersistenceError):
        repo.create(_new_user())


# ---------------------------------------------------------------------------
# Supabase authoritative, SQLite cache
# ---------------------------------------------------------------------------


def test_online_create_writes_supabase_and_warms_cache(online_repo, online_db, fake_supabase) -> None:
    created = online_repo.create(_new_user())

    assert created.id in fake_supabase.rows
    cached = online_db.sqlite.execute(
        "SELECT github_id FROM users WHERE id = ?", (created.id,)
    ).fetchone()
    assert cached["github_id"] == "100"


def test_online_unique_violation_is_a_conflict(online_repo) -> None:
    online_repo.create(_new_user())
    with pytest.raises(UserConflictError):
        online_repo.create(_new_user())


def test_online_update_goes_to_supabase(online_repo, fake_supabase) -> None:
    created = online_repo.create(_new_user())
    changed = created.model_copy(
        update={"github": created.github.model_copy(update={"image_url": "https://a.test/new.png"})}
    )

    updated = online_repo.update(changed)

    assert updated.github.image_url == "https://a.test/new.png"
    assert fake_supabase.rows[created.id]["github_image_url"] == "https://a.test/new.png"


def test_unreachable_supabase_serves_cached_hit(online_repo, fake_supabase) -> None:
    created = online_repo.create(_new_user())
    fake_supabase.down = True

    assert online_repo.find_by_github_id("100") == created


def test_unreachable_supabase_with_cache_miss_is_a_lookup_error(online_repo, fake_supabase) -> None:
    fake_supabase.down = True
    with pytest.raises(UserLookupError):
        online_repo.find_by_github_id("100")


def test_unreachable_supabase_on_create_is_a_persistence_error(online_repo, fake_supabase) -> None:
    fake_supabase.down = True
    with pytest.raises(UserPersistenceError):
        online_repo.create(_new_user())
