"""
Compliance Module
=================

Audit trail of verification activity with masked identifiers.
"""

from crossid_core.compliance.audit_logger import AuditLogger, AuditEvent, AuditAction

__all__ = [
    "AuditLogger",
    "AuditEvent",
    "AuditAction",
]
