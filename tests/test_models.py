from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from identity_link.exceptions import MalformedProfileError
from identity_link.models.profile import ProviderProfile
from identity_link.models.user import GitHubIdentity, User


def _github() -> GitHubIdentity:
    return GitHubIdentity(id="1", username="octocat")


def test_email_is_trimmed_and_lower_cased() -> None:
    user = User(
        github=_github(),
        email="  Mona@Example.COM ",
        email_consent_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
        email_consent_ip="203.0.113.0",
        email_consent_version="v1",
    )
    assert user.email == "mona@example.com"


def test_invalid_email_is_rejected() -> None:
    with pytest.raises(ValidationError):
        User(
            github=_github(),
            email="not-an-address",
            email_consent_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
            email_consent_ip="203.0.113.0",
            email_consent_version="v1",
        )


def test_partial_consent_triple_is_rejected() -> None:
    with pytest.raises(ValidationError):
        User(github=_github(), email="mona@example.com")
    with pytest.raises(ValidationError):
        User(github=_github(), email_consent_version="v1")


def test_user_without_email_or_consent_is_valid() -> None:
    user = User(github=_github())
    assert not user.has_email_consent


def test_row_round_trip_keeps_nested_github_fields() -> None:
    user = User(
        id="u-1",
        github=GitHubIdentity(id="42", username="mona", display_name="Mona", image_url="https://a.test/m.png"),
    )
    row = user.to_row()
    assert row["github_id"] == "42"
    assert row["github_display_name"] == "Mona"
    assert User.from_row(row) == user


def test_payload_with_numeric_id() -> None:
    profile = ProviderProfile.from_payload({"id": 583231, "username": "octocat"})
    assert profile.id == "583231"
    assert profile.avatar_url is None
    assert profile.primary_email is None


@pytest.mark.parametrize("payload", [{}, {"id": None}, {"id": "  "}, {"id": True}])
def test_payload_without_id_is_malformed(payload: dict) -> None:
    with pytest.raises(MalformedProfileError):
        ProviderProfile.from_payload(payload)


def test_odd_photo_and_email_shapes_degrade() -> None:
    profile = ProviderProfile.from_payload(
        {
            "id": "7",
            "photos": "https://a.test/7.png",
            "emails": ["mona@example.com", {"value": "other@example.com", "verified": True}],
        }
    )
    assert profile.photos == []
    assert profile.avatar_url is None
    # The malformed first entry keeps its position: it is still the candidate.
    assert profile.primary_email is not None
    assert profile.primary_email.value is None


def test_only_literal_true_counts_as_verified() -> None:
    profile = ProviderProfile.from_payload(
        {"id": "7", "emails": [{"value": "mona@example.com", "verified": "true"}]}
    )
    assert profile.primary_email is not None
    assert profile.primary_email.verified is False
