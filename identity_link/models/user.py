"""
User Model.

Pydantic model for the durable identity record.  The GitHub mirror is a
nested ``GitHubIdentity``; storage flattens it into ``github_*`` columns
(see :meth:`User.to_row` / :meth:`User.from_row`).
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

EMAIL_PATTERN: re.Pattern[str] = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Columns written by the store, in table order.
USER_COLUMNS: tuple[str, ...] = (
    "id",
    "github_id",
    "github_username",
    "github_display_name",
    "github_image_url",
    "email",
    "email_consent_date",
    "email_consent_ip",
    "email_consent_version",
    "created_at",
    "updated_at",
)


def normalize_email(value: str) -> str:
    """Trim and lower-case an email address."""
    return value.strip().lower()


class GitHubIdentity(BaseModel):
    """Mirror of the GitHub profile fields; ``id`` is the unique external key."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    username: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")


class User(BaseModel):
    """A local user linked to exactly one GitHub identity.

    ``email`` and the consent triple (``email_consent_date``,
    ``email_consent_ip``, ``email_consent_version``) are all present or
    all absent.  Only ``github.image_url`` changes after creation.
    """

    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None  # assigned by the store
    github: GitHubIdentity
    email: Optional[str] = None
    email_consent_date: Optional[datetime] = None
    email_consent_ip: Optional[str] = None
    email_consent_version: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: object) -> object:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("email must be a string")
        normalized = normalize_email(value)
        if not EMAIL_PATTERN.match(normalized):
            raise ValueError("Please fill a valid email address")
        return normalized

    @model_validator(mode="after")
    def _consent_triple_is_complete(self) -> "User":
        fields = (
            self.email,
            self.email_consent_date,
            self.email_consent_ip,
            self.email_consent_version,
        )
        present = [value is not None for value in fields]
        if any(present) and not all(present):
            raise ValueError(
                "email and the consent fields must be set together or not at all"
            )
        return self

    @property
    def has_email_consent(self) -> bool:
        return self.email is not None

    def to_row(self) -> dict[str, Optional[str]]:
        """Flatten into a storage row.  Datetimes become ISO-8601 strings."""
        return {
            "id": self.id,
            "github_id": self.github.id,
            "github_username": self.github.username,
            "github_display_name": self.github.display_name,
            "github_image_url": self.github.image_url,
            "email": self.email,
            "email_consent_date": _iso(self.email_consent_date),
            "email_consent_ip": self.email_consent_ip,
            "email_consent_version": self.email_consent_version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, object]) -> "User":
        """Rebuild a ``User`` from a storage row (SQLite or Supabase)."""
        return cls(
            id=row.get("id"),
            github=GitHubIdentity(
                id=str(row.get("github_id")),
                username=row.get("github_username"),
                display_name=row.get("github_display_name"),
                image_url=row.get("github_image_url"),
            ),
            email=row.get("email"),
            email_consent_date=row.get("email_consent_date"),
            email_consent_ip=row.get("email_consent_ip"),
            email_consent_version=row.get("email_consent_version"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
