"""
Identity-link error taxonomy.

Every error carries a human-readable ``message`` and, when it wraps a
lower-level failure, the ``original_error`` that caused it.
"""

from __future__ import annotations

from typing import Optional


class IdentityLinkError(Exception):
    """Base class for identity-link failures."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


class UserLookupError(IdentityLinkError):
    """The user store could not answer a lookup (unreachable or query error)."""


class UserConflictError(IdentityLinkError):
    """A create hit the uniqueness constraint on ``github_id``."""


class UserPersistenceError(IdentityLinkError):
    """A create or update could not be persisted."""


class MalformedProfileError(IdentityLinkError):
    """The provider payload has no usable GitHub id and cannot be linked."""
