"""Authentication commands: login, status, logout.

Login runs the loopback authorization-code flow:
1. Client credentials come from the flags, or from what is already
   stored for the profile (including the environment fallback)
2. The browser is opened on the consent page; the URL is also printed
   to stderr for headless machines
3. The callback is validated, tokens are exchanged and committed, and
   the profile is registered with its account email
"""

from __future__ import annotations

import logging
from typing import Any

from gmail_cli.api.client import client_factory
from gmail_cli.auth.credentials import credential_manager
from gmail_cli.auth.oauth import OAuthFlowController
from gmail_cli.auth.profiles import DEFAULT_PROFILE, validate_profile_name
from gmail_cli.commands.base import (
    build_error_response,
    build_success_response,
    error_response_from_exception,
)
from gmail_cli.middleware.audit_logger import audit_logger

logger = logging.getLogger(__name__)


async def auth_login(
    client_id: str | None = None,
    client_secret: str | None = None,
    profile: str | None = None,
) -> dict[str, Any]:
    """Sign in a profile through the browser.

    Args:
        client_id: OAuth client ID. Optional when already stored.
        client_secret: OAuth client secret. Optional when already stored.
        profile: Target profile. Defaults to ``default``.

    Returns:
        Success: {status, data: {profile, email}, message}
        Error: {status, error, error_code, hint?}
    """
    try:
        target = validate_profile_name(profile or DEFAULT_PROFILE)

        if not client_id or not client_secret:
            stored = credential_manager.get_client_credentials(target)
            if stored is None:
                return build_error_response(
                    error=f"No client credentials available for profile '{target}'",
                    error_code="MissingCredentialsError",
                    details={
                        "hint": "Pass --client-id and --client-secret from your "
                        "Google Cloud OAuth client (Desktop app)"
                    },
                )
            client_id = client_id or stored.client_id
            client_secret = client_secret or stored.client_secret

        # Blocks until the callback arrives; Ctrl-C aborts the flow
        result = OAuthFlowController().run(client_id, client_secret, profile=target)

        client_factory.invalidate(result.profile)
        audit_logger.log_auth_event(
            "login", profile=result.profile, details={"email": result.email}
        )
        logger.info("Logged in profile %s", result.profile)

        message = f"Logged in profile '{result.profile}'"
        if result.email:
            message += f" as {result.email}"
        return build_success_response(
            data={"profile": result.profile, "email": result.email},
            message=message,
        )

    except Exception as e:
        audit_logger.log_auth_event(
            "login", profile=profile or DEFAULT_PROFILE, success=False, error_message=str(e)
        )
        return error_response_from_exception(e, "Login")


async def auth_status(profile: str | None = None) -> dict[str, Any]:
    """Report whether a profile (default: active) is authenticated.

    Does not contact the provider; it inspects stored state only.
    """
    try:
        p = credential_manager.resolve_profile(profile)
        has_client = credential_manager.get_client_credentials(p) is not None
        tokens = credential_manager.get_tokens(p)
        authenticated = has_client and tokens is not None

        data: dict[str, Any] = {
            "profile": p,
            "active": p == credential_manager.registry.get_active(),
            "registered": credential_manager.registry.exists(p),
            "email": credential_manager.registry.get_email(p),
            "authenticated": authenticated,
            "has_client_credentials": has_client,
            "has_tokens": tokens is not None,
            "has_refresh_token": bool(tokens and tokens.refresh_token),
            "storage": credential_manager.store.name,
        }
        if tokens is not None and tokens.expiry_date is not None:
            expiry = tokens.expiry_datetime()
            data["expires_at"] = expiry.isoformat() + "Z" if expiry else None

        if authenticated:
            message = f"Profile '{p}' is authenticated"
        else:
            message = (
                f"Profile '{p}' is not authenticated. "
                f"Run: gmail-cli auth login --profile {p}"
            )
        return build_success_response(data=data, message=message)

    except Exception as e:
        return error_response_from_exception(e, "Status check")


async def auth_logout(profile: str | None = None) -> dict[str, Any]:
    """Remove a profile's tokens, keeping its client credentials."""
    try:
        p = credential_manager.resolve_profile(profile)
        removed = credential_manager.logout(p)
        client_factory.invalidate(p)
        audit_logger.log_auth_event("logout", profile=p, success=removed)

        if not removed:
            return build_error_response(
                error=f"Failed to remove tokens for profile '{p}'",
                error_code="StorageError",
            )
        return build_success_response(
            data={"profile": p},
            message=f"Logged out profile '{p}'",
        )

    except Exception as e:
        return error_response_from_exception(e, "Logout")


__all__ = ["auth_login", "auth_status", "auth_logout"]
