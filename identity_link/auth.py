"""
Session Serialization.

After a successful link the OAuth middleware keeps only the user's local
``id`` in the session and rebuilds the user from the store on later
requests.

Usage::

    serializer = UserSessionSerializer(repo=user_repository)
    session["user_id"] = serializer.serialize(result.user)
    ...
    user = serializer.deserialize(session["user_id"])
"""

from __future__ import annotations

from typing import Callable, Optional

from identity_link.exceptions import IdentityLinkError
from identity_link.models.user import User
from identity_link.repositories.user_repository import UserRepository


class UserSessionSerializer:
    """Serializes users to their ``id`` and back.  Holds no session state."""

    def __init__(self, repo: UserRepository) -> None:
        self._repo = repo

    def serialize(self, user: User) -> str:
        """Return the value stored in the session for *user*.

        Raises:
            ValueError: If *user* has not been persisted yet.
        """
        if user.id is None:
            raise ValueError("Cannot serialize a user that has no id")
        return user.id

    def deserialize(self, user_id: str) -> Optional[User]:
        """Load the user for a session value, or ``None`` if it no longer exists.

        Raises:
            UserLookupError: If the store cannot answer.
        """
        return self._repo.get_by_id(user_id)

    def serialize_user(
        self,
        user: User,
        done: Callable[[Optional[Exception], Optional[str]], None],
    ) -> None:
        """Callback form of :meth:`serialize` for passport-style middleware."""
        try:
            user_id = self.serialize(user)
        except ValueError as exc:
            done(exc, None)
            return
        done(None, user_id)

    def deserialize_user(
        self,
        user_id: str,
        done: Callable[[Optional[Exception], Optional[User]], None],
    ) -> None:
        """Callback form of :meth:`deserialize`."""
        try:
            user = self.deserialize(user_id)
        except IdentityLinkError as exc:
            done(exc, None)
            return
        done(None, user)
