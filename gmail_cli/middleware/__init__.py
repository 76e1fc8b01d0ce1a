"""Middleware for gmail-cli.

- AuditLogger: JSON audit trail of authentication events on stderr
"""

from gmail_cli.middleware.audit_logger import AuditEntry, AuditLogger, audit_logger

__all__ = [
    "AuditEntry",
    "AuditLogger",
    "audit_logger",
]
