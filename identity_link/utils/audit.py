"""
Structured Audit Logging Utility.

Every identity state change (user linked, consent captured, avatar
synced) is logged as a schema-validated JSON object and, when a database
is supplied, persisted to the ``audit_log`` table.  Audit details never
contain email addresses; client addresses appear anonymized only.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, Union

from pydantic import BaseModel, Field

from identity_link.logger import StructuredLogger

if TYPE_CHECKING:
    from identity_link.database import DatabaseManager

__all__ = ["AuditEvent", "log_audit_event", "persist_audit_event"]

# Flat scalar values only; nested structures do not belong in an audit line.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry."""

    timestamp: str
    action: str
    entity_type: str
    entity_id: str
    actor_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    actor_id: str,
    details: Optional[dict[str, DetailValue]] = None,
    db: Optional["DatabaseManager"] = None,
) -> AuditEvent:
    """Log a structured JSON audit event, with optional SQLite persistence.

    Args:
        logger: The logger instance to write to.
        action: What happened (e.g. ``"USER_LINK_CREATE"``,
            ``"EMAIL_CONSENT_CAPTURED"``, ``"AVATAR_SYNC"``).
        entity_type: Type of entity affected (``"User"``).
        entity_id: Local id of the affected entity.
        actor_id: Who triggered the change; for logins this is the
            GitHub id of the identity that authenticated.
        details: Optional additional context (e.g. old/new values).
        db: Optional database.  When provided, the event is also written
            to ``audit_log``.  Persistence failures are logged, never
            propagated.

    Returns:
        The validated event that was logged.
    """
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        details=details or {},
    )
    logger.info("AUDIT: %s", json.dumps(event.model_dump(), default=str))

    if db is not None:
        try:
            with db.write_lock:
                persist_audit_event(db.sqlite, event)
        except sqlite3.Error as db_err:
            logger.warning("Failed to persist audit event to SQLite: %s", db_err)

    return event


def persist_audit_event(conn: sqlite3.Connection, event: AuditEvent) -> None:
    """Write an already-validated audit event to the ``audit_log`` table."""
    conn.execute(
        """
        INSERT INTO audit_log (timestamp, action, entity_type, entity_id, actor_id, details)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            event.timestamp,
            event.action,
            event.entity_type,
            event.entity_id,
            event.actor_id,
            json.dumps(event.details, default=str),
        ),
    )
    conn.commit()
