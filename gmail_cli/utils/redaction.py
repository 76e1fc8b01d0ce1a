"""Redaction of credential-like substrings in user-facing messages.

Provider and transport errors routinely echo request bodies or headers.
Every message that leaves the process (command output, log lines, audit
entries) passes through :func:`sanitize_error_message` first.
"""

from __future__ import annotations

import re

REDACTED = "[REDACTED]"

_TOKEN_CHARS = r"[\w\-._~+/]+=*"

_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(rf"Bearer\s+{_TOKEN_CHARS}", re.IGNORECASE), f"Bearer {REDACTED}"),
    # JSON-quoted forms: "access_token": "ya29..."
    (
        re.compile(
            r'"(\w*(?:access_token|refresh_token|client_secret|id_token))"\s*:\s*"[^"]*"',
            re.IGNORECASE,
        ),
        rf'"\1": "{REDACTED}"',
    ),
    # key=value / key: value forms
    (
        re.compile(
            rf"(access_token|refresh_token|client_secret|id_token)[=:]\s*{_TOKEN_CHARS}",
            re.IGNORECASE,
        ),
        rf"\1={REDACTED}",
    ),
]


def sanitize_error_message(message: str) -> str:
    """Redact bearer tokens, OAuth tokens and client secrets from a message.

    Args:
        message: Arbitrary message text, possibly containing secrets.

    Returns:
        The message with secret values replaced by ``[REDACTED]``. Messages
        without secret-bearing patterns are returned unchanged.

    Example:
        >>> sanitize_error_message("failed: client_secret=GOCSPX-abc")
        'failed: client_secret=[REDACTED]'
    """
    for pattern, replacement in _PATTERNS:
        message = pattern.sub(replacement, message)
    return message


__all__ = ["REDACTED", "sanitize_error_message"]
