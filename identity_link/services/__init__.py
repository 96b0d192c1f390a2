"""
Business Logic Services Package.

The ``create_services()`` factory wires the repository and services
together, returning a typed dict the HTTP layer can consume without
knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import TypedDict

from identity_link.auth import UserSessionSerializer
from identity_link.config import AppConfig
from identity_link.database import DatabaseManager
from identity_link.logger import get_logger
from identity_link.repositories.user_repository import UserRepository
from identity_link.services.consent import ConsentEvaluator
from identity_link.services.identity_linker import IdentityLinkerService


class ServiceContainer(TypedDict):
    """Typed container for all services."""

    user_repository: UserRepository
    consent_evaluator: ConsentEvaluator
    identity_linker: IdentityLinkerService
    session_serializer: UserSessionSerializer


def create_services(db: DatabaseManager, config: AppConfig) -> ServiceContainer:
    """Wire the repository and services together.

    Args:
        db: The initialised database manager (schema already applied).
        config: Application configuration, injected into every service
            that needs it.

    Returns:
        A ``ServiceContainer`` with every service instantiated.
    """
    user_repository = UserRepository(db=db, logger=get_logger("user_repository"))
    consent_evaluator = ConsentEvaluator(
        session_key=config.EMAIL_CONSENT_SESSION_KEY,
        logger=get_logger("consent"),
    )
    identity_linker = IdentityLinkerService(
        repo=user_repository,
        consent=consent_evaluator,
        config=config,
        logger=get_logger("identity_linker"),
        audit_db=db,
    )

    return ServiceContainer(
        user_repository=user_repository,
        consent_evaluator=consent_evaluator,
        identity_linker=identity_linker,
        session_serializer=UserSessionSerializer(repo=user_repository),
    )
