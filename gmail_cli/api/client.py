"""Authenticated HTTP client factory.

Downstream API wrappers ask for "a ready client for profile X" and never
touch the secret store or the profile registry themselves.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import Resource, build

from gmail_cli.auth.credentials import CredentialManager, credential_manager
from gmail_cli.auth.models import Tokens, merge_tokens
from gmail_cli.auth.oauth import GOOGLE_TOKEN_URI, SCOPES
from gmail_cli.middleware.audit_logger import audit_logger
from gmail_cli.utils.errors import NotAuthenticatedError

logger = logging.getLogger(__name__)


class RotatingCredentials(Credentials):
    """Credentials that report every successful refresh.

    google-auth refreshes silently inside ``AuthorizedSession`` and
    discovery clients; ``on_refresh`` is called with the refreshed
    credentials each time.
    """

    def __init__(
        self,
        *args: Any,
        on_refresh: Callable[[RotatingCredentials], None] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)  # type: ignore[no-untyped-call]
        self._on_refresh = on_refresh

    def refresh(self, request: Any) -> None:
        super().refresh(request)  # type: ignore[no-untyped-call]
        if self._on_refresh is not None and self.token:
            self._on_refresh(self)


class AuthenticatedClientFactory:
    """Factory for request-signing clients per profile.

    Handles credential resolution, token rotation persistence, and caching
    of clients per resolved profile name for the life of the process.
    """

    def __init__(self, credentials: CredentialManager | None = None) -> None:
        self._manager = credentials if credentials is not None else credential_manager
        self._credentials: dict[str, RotatingCredentials] = {}
        self._sessions: dict[str, AuthorizedSession] = {}
        self._services: dict[tuple[str, str, str], Resource] = {}
        self._lock = threading.RLock()

    def get_credentials(self, profile: str | None = None) -> RotatingCredentials:
        """Return (cached) rotating credentials for a profile.

        Raises:
            NotAuthenticatedError: If client credentials or tokens are missing.
        """
        p = self._manager.resolve_profile(profile)

        with self._lock:
            cached = self._credentials.get(p)
            if cached is not None:
                return cached

            client = self._manager.get_client_credentials(p)
            if client is None:
                raise NotAuthenticatedError(
                    p,
                    f"Profile '{p}' not authenticated. "
                    f"Run: gmail-cli auth login --profile {p}",
                )

            tokens = self._manager.get_tokens(p)
            if tokens is None:
                raise NotAuthenticatedError(
                    p,
                    f"No tokens found for profile '{p}'. "
                    f"Run: gmail-cli auth login --profile {p}",
                )

            creds = RotatingCredentials(
                token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                token_uri=GOOGLE_TOKEN_URI,
                client_id=client.client_id,
                client_secret=client.client_secret,
                scopes=SCOPES,
                expiry=tokens.expiry_datetime(),
                on_refresh=lambda refreshed: self._persist_rotation(p, refreshed),
            )
            self._credentials[p] = creds
            logger.debug("Built credentials for profile %s", p)
            return creds

    def for_profile(self, profile: str | None = None) -> AuthorizedSession:
        """Return a request-signing HTTP session for a profile.

        Raises:
            NotAuthenticatedError: If the profile has no usable credentials.
        """
        p = self._manager.resolve_profile(profile)
        with self._lock:
            session = self._sessions.get(p)
            if session is None:
                session = AuthorizedSession(self.get_credentials(p))
                self._sessions[p] = session
            return session

    def service(self, api: str, version: str, profile: str | None = None) -> Resource:
        """Return a discovery-based API client (e.g. ``gmail``, ``v1``)."""
        p = self._manager.resolve_profile(profile)
        key = (p, api, version)
        with self._lock:
            service = self._services.get(key)
            if service is None:
                service = build(
                    api, version, credentials=self.get_credentials(p), cache_discovery=False
                )
                self._services[key] = service
            return service

    def _persist_rotation(self, profile: str, credentials: Credentials) -> None:
        """Merge a refreshed token with the stored one and write it back."""
        rotated = Tokens.from_credentials(credentials)
        merged = merge_tokens(self._manager.get_tokens(profile), rotated)
        committed = self._manager.set_tokens(merged, profile=profile)
        if committed:
            logger.debug("Persisted refreshed tokens for profile %s", profile)
        else:
            logger.warning("Refreshed tokens for profile %s could not be stored", profile)
        audit_logger.log_auth_event("refresh", profile=profile, success=committed)

    def invalidate(self, profile: str) -> None:
        """Drop cached clients for a profile."""
        with self._lock:
            self._credentials.pop(profile, None)
            session = self._sessions.pop(profile, None)
            for key in [k for k in self._services if k[0] == profile]:
                del self._services[key]
        if session is not None:
            session.close()
        logger.debug("Invalidated cached clients for profile %s", profile)

    def invalidate_all(self) -> None:
        with self._lock:
            profiles = set(self._credentials) | set(self._sessions)
        for profile in profiles:
            self.invalidate(profile)


# Global singleton
client_factory = AuthenticatedClientFactory()


__all__ = [
    "RotatingCredentials",
    "AuthenticatedClientFactory",
    "client_factory",
]
