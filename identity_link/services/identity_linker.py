"""
GitHub Identity Linking Service.

Turns a completed GitHub OAuth profile into a local ``User``.  Runs once
per OAuth callback request and is safe to call concurrently: the service
holds no per-request state and relies on the store's unique constraint on
``github_id`` instead of locks.

Linking strategy:
    - Existing identity: sync the avatar URL only.  Email and consent
      fields are captured on first link and never touched again.
    - New identity: build the complete record (including email and the
      consent triple when authorized) and persist it in one write.
    - Concurrent first logins: the losing ``create`` hits the unique
      constraint and is re-resolved as an existing identity.
    - Failures come back as ``LinkResult.error``; nothing is retried.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from identity_link.config import AppConfig
from identity_link.database import DatabaseManager
from identity_link.exceptions import (
    IdentityLinkError,
    UserConflictError,
    UserPersistenceError,
)
from identity_link.logger import StructuredLogger
from identity_link.models.link_models import LinkResult
from identity_link.models.profile import ProviderProfile, RequestContext
from identity_link.models.user import EMAIL_PATTERN, GitHubIdentity, User, normalize_email
from identity_link.repositories.user_repository import UserRepository
from identity_link.services.base_service import BaseService
from identity_link.services.consent import ConsentEvaluator
from identity_link.services.profile_sync import compute_avatar_sync
from identity_link.utils.audit import log_audit_event
from identity_link.utils.ip import anonymize_ip, extract_client_ip, is_anonymizable_ip

# Recorded as the consent IP when the request carried no usable address.
UNKNOWN_CONSENT_IP: str = "unknown"

CompletionCallback = Callable[[Optional[IdentityLinkError], Optional[User]], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IdentityLinkerService(BaseService):
    """Finds or creates the local user for a GitHub login."""

    def __init__(
        self,
        repo: UserRepository,
        consent: ConsentEvaluator,
        config: AppConfig,
        logger: StructuredLogger,
        audit_db: Optional[DatabaseManager] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._consent = consent
        self._consent_version: str = config.EMAIL_CONSENT_VERSION
        self._forwarded_for_header: str = config.FORWARDED_FOR_HEADER
        self._audit_db = audit_db
        self._clock = clock

    def link(
        self,
        profile: Union[ProviderProfile, Mapping[str, object]],
        context: Optional[RequestContext],
    ) -> LinkResult:
        """Link *profile* to a local user.

        Args:
            profile: The provider profile, or the strategy's raw payload.
            context: The callback request (headers, peer address, session).

        Returns:
            A ``LinkResult`` carrying the user, or the error that aborted
            the login (``UserLookupError``, ``UserPersistenceError``,
            ``MalformedProfileError``).
        """
        try:
            parsed = (
                profile
                if isinstance(profile, ProviderProfile)
                else ProviderProfile.from_payload(profile)
            )
            return self._link(parsed, context)
        except IdentityLinkError as exc:
            self._logger.error(
                "Identity link failed: %s", exc.message, exc_info=exc.original_error is not None,
            )
            return LinkResult(error=exc)
        except Exception as exc:
            self._logger.error("Identity link: unexpected error: %s", exc, exc_info=True)
            return LinkResult(
                error=IdentityLinkError(
                    f"Unexpected error during identity link: {exc}", original_error=exc,
                )
            )

    def verify(
        self,
        profile: Union[ProviderProfile, Mapping[str, object]],
        context: Optional[RequestContext],
        done: CompletionCallback,
    ) -> None:
        """Strategy verify callback: link, then call ``done(error, user)`` once."""
        result = self.link(profile, context)
        done(result.error, result.user)

    # ------------------------------------------------------------------
    # Private implementation
    # ------------------------------------------------------------------

    def _link(self, profile: ProviderProfile, context: Optional[RequestContext]) -> LinkResult:
        existing = self._repo.find_by_github_id(profile.id)
        if existing is not None:
            return LinkResult(user=self._sync_existing_user(existing, profile))
        return self._provision_new_user(profile, context)

    def _provision_new_user(
        self,
        profile: ProviderProfile,
        context: Optional[RequestContext],
    ) -> LinkResult:
        new_user = self._build_user(profile, context)

        try:
            created = self._repo.create(new_user)
        except UserConflictError as exc:
            # Another callback for the same identity won the insert.
            self._logger.warning(
                "Identity link: github_id %s created concurrently; re-resolving.",
                profile.id,
            )
            existing = self._repo.find_by_github_id(profile.id)
            if existing is None:
                raise UserPersistenceError(
                    f"github_id {profile.id} conflicted on create but cannot be found",
                    original_error=exc,
                ) from exc
            return LinkResult(user=self._sync_existing_user(existing, profile))

        self._logger.info(
            "Identity link: created user %s for github_id %s", created.id, profile.id,
        )
        log_audit_event(
            logger=self._logger,
            action="USER_LINK_CREATE",
            entity_type="User",
            entity_id=str(created.id),
            actor_id=profile.id,
            details={"username": created.github.username, "email_captured": created.has_email_consent},
            db=self._audit_db,
        )
        if created.has_email_consent:
            log_audit_event(
                logger=self._logger,
                action="EMAIL_CONSENT_CAPTURED",
                entity_type="User",
                entity_id=str(created.id),
                actor_id=profile.id,
                details={
                    "consent_date": created.email_consent_date.isoformat(),
                    "consent_ip": created.email_consent_ip,
                    "consent_version": created.email_consent_version,
                },
                db=self._audit_db,
            )
        return LinkResult(user=created, created=True)

    def _build_user(self, profile: ProviderProfile, context: Optional[RequestContext]) -> User:
        github = GitHubIdentity(
            id=profile.id,
            username=profile.username,
            display_name=profile.display_name,
            image_url=profile.avatar_url,
        )
        return User(github=github, **self._email_capture(profile, context))

    def _email_capture(
        self,
        profile: ProviderProfile,
        context: Optional[RequestContext],
    ) -> dict[str, object]:
        """Email plus consent triple, or ``{}`` when capture is not allowed."""
        candidate = profile.primary_email
        if candidate is None or not candidate.value or not candidate.verified:
            return {}

        if not self._consent.is_email_capture_authorized(context):
            self._logger.info(
                "Identity link: no email consent in session for github_id %s; "
                "email not stored.",
                profile.id,
            )
            return {}

        email = normalize_email(candidate.value)
        if not EMAIL_PATTERN.match(email):
            self._logger.warning(
                "Identity link: provider email for github_id %s is not a valid "
                "address; email not stored.",
                profile.id,
            )
            return {}

        client_ip = extract_client_ip(context, self._forwarded_for_header)
        if client_ip is not None and not is_anonymizable_ip(client_ip):
            self._logger.warning(
                "Identity link: unrecognized client address format for github_id %s; "
                "consent IP stored as received.",
                profile.id,
            )

        return {
            "email": email,
            "email_consent_date": self._clock(),
            "email_consent_ip": anonymize_ip(client_ip) or UNKNOWN_CONSENT_IP,
            "email_consent_version": self._consent_version,
        }

    def _sync_existing_user(self, user: User, profile: ProviderProfile) -> User:
        sync = compute_avatar_sync(user.github.image_url, profile.avatar_url)
        if not sync.needs_update:
            return user

        updated = user.model_copy(
            update={"github": user.github.model_copy(update={"image_url": sync.image_url})}
        )
        saved = self._repo.update(updated)

        self._logger.info("Identity link: avatar synced for user %s", user.id)
        log_audit_event(
            logger=self._logger,
            action="AVATAR_SYNC",
            entity_type="User",
            entity_id=str(user.id),
            actor_id=profile.id,
            details={"old_image_url": user.github.image_url, "new_image_url": sync.image_url},
            db=self._audit_db,
        )
        return saved
