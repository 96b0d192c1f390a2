"""
Service Layer Data Transfer Objects.

Results handed back by the profile sync and identity linker services.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from identity_link.exceptions import IdentityLinkError
from identity_link.models.user import User

__all__ = ["AvatarSync", "LinkResult"]


class AvatarSync(BaseModel):
    """Outcome of comparing the stored avatar against the provider's."""

    needs_update: bool
    image_url: Optional[str] = None


class LinkResult(BaseModel):
    """Outcome of one login event: the linked user, or the error that stopped it.

    ``created`` is ``True`` only when this call inserted the record.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    user: Optional[User] = None
    error: Optional[IdentityLinkError] = None
    created: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.user is not None
