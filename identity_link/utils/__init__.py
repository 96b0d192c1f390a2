"""Shared helpers: client address handling and the structured audit trail."""

from identity_link.utils.audit import AuditEvent, log_audit_event
from identity_link.utils.ip import anonymize_ip, extract_client_ip, is_anonymizable_ip

__all__ = [
    "AuditEvent",
    "anonymize_ip",
    "extract_client_ip",
    "is_anonymizable_ip",
    "log_audit_event",
]
