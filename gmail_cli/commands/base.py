"""Base utilities for gmail-cli commands.

This module provides shared utilities used by all commands including:
- Standardized response builders
- Conversion of exceptions into error responses with recovery hints
"""

from __future__ import annotations

import logging
from typing import Any

from gmail_cli.utils.errors import (
    ActiveProfileProtectedError,
    CorruptConfigError,
    GmailCliError,
    NotAuthenticatedError,
    OAuthListenerError,
    ProfileExistsError,
    ProfileNotFoundError,
)
from gmail_cli.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)


# =============================================================================
# Standard Response Keys
# =============================================================================


class ResponseKeys:
    """Standard keys for command responses."""

    STATUS = "status"
    DATA = "data"
    MESSAGE = "message"
    COUNT = "count"
    ERROR = "error"
    ERROR_CODE = "error_code"
    HINT = "hint"


# =============================================================================
# Response Builders
# =============================================================================


def build_success_response(
    data: Any,
    message: str | None = None,
    count: int | None = None,
) -> dict[str, Any]:
    """Build standardized success response.

    Args:
        data: Command-specific payload.
        message: Optional human-readable message.
        count: Optional item count.

    Returns:
        Standardized success response dict.
    """
    response: dict[str, Any] = {
        ResponseKeys.STATUS: "success",
        ResponseKeys.DATA: data,
    }
    if message:
        response[ResponseKeys.MESSAGE] = message
    if count is not None:
        response[ResponseKeys.COUNT] = count
    return response


def build_error_response(
    error: str,
    error_code: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build standardized error response.

    Args:
        error: Human-readable error message.
        error_code: Optional error code for programmatic handling.
        details: Optional additional error details.

    Returns:
        Standardized error response dict.
    """
    response: dict[str, Any] = {
        ResponseKeys.STATUS: "error",
        ResponseKeys.ERROR: error,
    }
    if error_code:
        response[ResponseKeys.ERROR_CODE] = error_code
    if details:
        response.update(details)
    return response


# =============================================================================
# Exception conversion
# =============================================================================


def _hint_for(error: GmailCliError) -> str | None:
    if isinstance(error, NotAuthenticatedError):
        return f"Run: gmail-cli auth login --profile {error.profile}"
    if isinstance(error, ActiveProfileProtectedError):
        return "Run: gmail-cli profile switch <other-profile>"
    if isinstance(error, ProfileNotFoundError):
        return "Run: gmail-cli profile list"
    if isinstance(error, ProfileExistsError):
        return "Pass --force to overwrite the existing profile"
    if isinstance(error, OAuthListenerError):
        return "Free the port or set OAUTH_PORT to another port"
    if isinstance(error, CorruptConfigError):
        return f"Delete {error.path} and run: gmail-cli auth login"
    return None


def error_response_from_exception(error: BaseException, action: str) -> dict[str, Any]:
    """Convert an exception into an error response.

    Known errors keep their message and class name as ``error_code``;
    anything else is reported as ``<action> failed``. Messages are always
    passed through :func:`sanitize_error_message`.

    Args:
        error: The exception raised by the command.
        action: Short description of the command, used for unexpected errors.

    Returns:
        Standardized error response dict.
    """
    if isinstance(error, GmailCliError):
        details: dict[str, Any] = {}
        hint = _hint_for(error)
        if hint:
            details[ResponseKeys.HINT] = hint
        return build_error_response(
            error=sanitize_error_message(error.message),
            error_code=type(error).__name__,
            details=details,
        )

    logger.error("Unexpected error during %s: %s", action, sanitize_error_message(str(error)))
    return build_error_response(
        error=sanitize_error_message(f"{action} failed: {error}"),
        error_code="UnexpectedError",
    )


__all__ = [
    "ResponseKeys",
    "build_success_response",
    "build_error_response",
    "error_response_from_exception",
]
