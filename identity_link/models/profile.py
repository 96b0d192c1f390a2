"""
Inbound models: the provider profile and the request context.

Both arrive from external collaborators (the OAuth strategy and the HTTP
layer).  ``ProviderProfile.from_payload`` is deliberately tolerant: odd
photo or email shapes degrade to "no value" instead of failing the login.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from identity_link.exceptions import MalformedProfileError

__all__ = [
    "ProviderEmail",
    "ProviderPhoto",
    "ProviderProfile",
    "RequestContext",
]


class ProviderPhoto(BaseModel):
    value: Optional[str] = None


class ProviderEmail(BaseModel):
    value: Optional[str] = None
    verified: bool = False


class ProviderProfile(BaseModel):
    """Identity payload returned by GitHub after the handshake."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")
    photos: list[ProviderPhoto] = Field(default_factory=list)
    emails: list[ProviderEmail] = Field(default_factory=list)

    @property
    def avatar_url(self) -> Optional[str]:
        """Value of the first photo, or ``None`` when there is none."""
        if not self.photos:
            return None
        return self.photos[0].value

    @property
    def primary_email(self) -> Optional[ProviderEmail]:
        """First entry of the provider's email list (the candidate primary email)."""
        if not self.emails:
            return None
        return self.emails[0]

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "ProviderProfile":
        """Build a profile from the strategy's raw payload.

        Entries keep their positions so "first email" / "first photo"
        still refer to what the provider sent first.  Only ``verified is
        True`` counts as verified.

        Raises:
            MalformedProfileError: If the payload has no usable ``id``.
        """
        raw_id = payload.get("id")
        if raw_id is None or isinstance(raw_id, bool) or not str(raw_id).strip():
            raise MalformedProfileError("GitHub profile payload has no id")

        photos = [
            ProviderPhoto(value=_str_or_none(entry.get("value")))
            if isinstance(entry, Mapping)
            else ProviderPhoto()
            for entry in _as_list(payload.get("photos"))
        ]
        emails = [
            ProviderEmail(
                value=_str_or_none(entry.get("value")),
                verified=entry.get("verified") is True,
            )
            if isinstance(entry, Mapping)
            else ProviderEmail()
            for entry in _as_list(payload.get("emails"))
        ]

        return cls(
            id=str(raw_id).strip(),
            username=_str_or_none(payload.get("username")),
            display_name=_str_or_none(payload.get("displayName")),
            photos=photos,
            emails=emails,
        )


class RequestContext(BaseModel):
    """What the core needs to know about the inbound callback request."""

    headers: dict[str, str] = Field(default_factory=dict)
    peer_address: Optional[str] = None
    session: Optional[dict[str, object]] = None

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


def _as_list(value: object) -> list[object]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _str_or_none(value: object) -> Optional[str]:
    return value if isinstance(value, str) else None
