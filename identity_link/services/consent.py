"""
Email consent evaluation.

Consent to store an email address is given by the user before the OAuth
redirect and recorded in their session.  What GitHub reports about the
address (``verified``) says nothing about consent and is never consulted
here.
"""

from __future__ import annotations

from typing import Optional

from identity_link.logger import StructuredLogger
from identity_link.models.profile import RequestContext
from identity_link.services.base_service import BaseService


class ConsentEvaluator(BaseService):
    """Decides whether a login request may capture a verified email."""

    def __init__(self, session_key: str, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._session_key: str = session_key

    @property
    def session_key(self) -> str:
        return self._session_key

    def is_email_capture_authorized(self, context: Optional[RequestContext]) -> bool:
        """``True`` only when the session carries the consent flag set to ``True``.

        Truthy non-boolean values (``"true"``, ``1``) do not count.
        """
        if context is None or context.session is None:
            return False
        return context.session.get(self._session_key) is True
