"""Audit trail for authentication events."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from gmail_cli.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)


class AuditEntry(BaseModel):
    """Model for an audit log entry."""

    timestamp: str = Field(
        default_factory=lambda: datetime.now(UTC).isoformat(),
        description="ISO format timestamp",
    )
    profile: str | None = Field(default=None, description="Profile acted on")
    event: str = Field(..., description="login, logout, refresh, export, ...")
    parameters: dict[str, Any] = Field(
        default_factory=dict,
        description="Event parameters (sensitive data redacted)",
    )
    result_status: str = Field(default="success", description="success or error")
    error_message: str | None = Field(
        default=None,
        description="Error message if failed (secrets redacted)",
    )


class AuditLogger:
    """Audit logger that writes JSON lines to stderr.

    stdout carries command output, so audit lines never go there.
    """

    SENSITIVE_KEYS = {
        "token",
        "tokens",
        "secret",
        "credential",
        "access_token",
        "refresh_token",
        "client_secret",
        "clientsecret",
        "authorization",
        "bearer",
        "code",
        "state",
    }

    def __init__(self, enabled: bool = True):
        """Initialize audit logger.

        Args:
            enabled: Whether audit logging is enabled.
        """
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _redact_sensitive(self, params: dict[str, Any]) -> dict[str, Any]:
        """Redact sensitive values from parameters."""
        redacted: dict[str, Any] = {}
        for key, value in params.items():
            if key.lower() in self.SENSITIVE_KEYS:
                redacted[key] = "[REDACTED]"
            elif isinstance(value, dict):
                redacted[key] = self._redact_sensitive(value)
            elif isinstance(value, str):
                redacted[key] = sanitize_error_message(value)
            else:
                redacted[key] = value
        return redacted

    def log(self, entry: AuditEntry) -> None:
        """Write audit entry to stderr."""
        if not self._enabled:
            return

        try:
            line = json.dumps({"audit": entry.model_dump()})
            print(line, file=sys.stderr, flush=True)
        except Exception as e:
            logger.error("Failed to write audit log: %s", e)

    def log_auth_event(
        self,
        event: str,
        profile: str | None = None,
        success: bool = True,
        details: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> None:
        """Log an authentication event.

        Args:
            event: Event type (login, logout, refresh, export, import,
                delete, switch).
            profile: Profile the event applies to.
            success: Whether the event succeeded.
            details: Additional event details (will be redacted).
            error_message: Error message if failed (will be sanitized).
        """
        entry = AuditEntry(
            profile=profile,
            event=event,
            parameters=self._redact_sensitive(details or {}),
            result_status="success" if success else "error",
            error_message=sanitize_error_message(error_message) if error_message else None,
        )
        self.log(entry)


def _audit_enabled() -> bool:
    return os.getenv("GMAIL_CLI_AUDIT", "").lower() in ("true", "1", "yes")


# Global singleton
audit_logger = AuditLogger(enabled=_audit_enabled())


__all__ = ["AuditEntry", "AuditLogger", "audit_logger"]
