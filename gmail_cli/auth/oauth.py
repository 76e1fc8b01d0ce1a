"""Google OAuth 2.0 authorization-code login flow.

One :class:`OAuthFlowController` drives one login attempt:

    IDLE -> LISTENING -> CODE_RECEIVED -> EXCHANGING -> COMMITTED

with any non-terminal state able to move to FAILED.

The controller persists the supplied client credentials, issues a random
per-flow ``state`` token, binds a loopback listener on a fixed port, opens
the consent page in the browser, and waits for exactly one callback that
ends the flow. The listener is closed on every exit path.

Security considerations:
- The ``state`` token carries 256 bits of randomness, is compared in
  constant time, and is consumed by the first callback whether it succeeds
  or fails
- A state mismatch fails the flow before any code exchange
- Requests to any path other than the callback path get a 404 and do not
  affect the flow

There is no timeout: an abandoned consent page leaves the process waiting
until it is interrupted.
"""

from __future__ import annotations

import contextlib
import html
import logging
import os
import secrets
import sys
import webbrowser
from collections.abc import Callable, Iterator
from enum import Enum
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, TextIO
from urllib.parse import parse_qs, urlencode, urlparse

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from pydantic import BaseModel

from gmail_cli.auth.credentials import CredentialManager, credential_manager
from gmail_cli.auth.models import Tokens
from gmail_cli.auth.profiles import DEFAULT_PROFILE, validate_profile_name
from gmail_cli.utils.errors import (
    GmailCliError,
    OAuthCsrfMismatchError,
    OAuthFlowError,
    OAuthListenerError,
    OAuthProviderError,
    StorageError,
)
from gmail_cli.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.compose",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
]

# Google OAuth endpoints
GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URI = "https://www.googleapis.com/oauth2/v2/userinfo"

REDIRECT_PORT = 8089
CALLBACK_PATH = "/callback"
STATE_TOKEN_BYTES = 32


class FlowState(str, Enum):
    """Lifecycle of one login attempt."""

    IDLE = "idle"
    LISTENING = "listening"
    CODE_RECEIVED = "code_received"
    EXCHANGING = "exchanging"
    COMMITTED = "committed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({FlowState.COMMITTED, FlowState.FAILED})


class FlowResult(BaseModel):
    """Outcome of a committed login."""

    profile: str
    email: str | None = None


def _page(title: str, *paragraphs: str) -> str:
    body = "".join(f"<p>{html.escape(p)}</p>" for p in paragraphs)
    return f"<html><body><h1>{html.escape(title)}</h1>{body}</body></html>"


class _CallbackServer(HTTPServer):
    """Loopback listener bound to one controller."""

    def __init__(self, address: tuple[str, int], controller: OAuthFlowController) -> None:
        self.controller = controller
        super().__init__(address, _CallbackHandler)


class _CallbackHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the OAuth redirect."""

    server: _CallbackServer

    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        if parsed.path != CALLBACK_PATH:
            self.send_response(404)
            self.end_headers()
            return

        params = {key: values[0] for key, values in parse_qs(parsed.query).items()}
        status, page = self.server.controller.handle_callback(params)

        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.end_headers()
        self.wfile.write(page.encode("utf-8"))

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        # Query strings carry the authorization code and state
        logger.debug("OAuth callback server: %s", (format % args).split("?", 1)[0])


class OAuthFlowController:
    """Drives a single authorization-code login for one profile.

    A controller is good for exactly one attempt; create a new one per
    login. The state token lives on the instance, never in module state.

    Attributes:
        _credentials: Where client credentials, tokens and the profile
            registration are committed.
        _port: Loopback port of the callback listener.
        _state: Current :class:`FlowState`.
        _state_token: Outstanding CSRF token, None once consumed.

    Example:
        >>> controller = OAuthFlowController()
        >>> result = controller.run(client_id, client_secret, profile="work")
        >>> result.email
        'a@x.com'
    """

    def __init__(
        self,
        credentials: CredentialManager | None = None,
        port: int | None = None,
        open_browser: Callable[[str], bool] | None = None,
        output: TextIO | None = None,
    ) -> None:
        """Initialize a login attempt.

        Args:
            credentials: Credential manager to commit through. Defaults to
                the process-wide instance.
            port: Callback port. Defaults to ``OAUTH_PORT`` or 8089.
            open_browser: Opens a URL, returning False on failure. Defaults
                to :func:`webbrowser.open`.
            output: Stream for the consent URL. Defaults to stderr.
        """
        self._credentials = credentials if credentials is not None else credential_manager
        if port is None:
            port = int(os.getenv("OAUTH_PORT", str(REDIRECT_PORT)))
        self._port = port
        self._redirect_uri = f"http://localhost:{self._port}{CALLBACK_PATH}"
        self._open_browser = open_browser or webbrowser.open
        self._output = output

        self._state = FlowState.IDLE
        self._state_token: str | None = None
        self._profile: str | None = None
        self._client_config: dict[str, Any] | None = None
        self._error: GmailCliError | None = None
        self._result: FlowResult | None = None

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def redirect_uri(self) -> str:
        return self._redirect_uri

    @property
    def error(self) -> GmailCliError | None:
        return self._error

    def _transition(self, new_state: FlowState) -> None:
        logger.debug("Login flow %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    def _fail(self, error: GmailCliError) -> GmailCliError:
        self._state_token = None
        self._error = error
        self._transition(FlowState.FAILED)
        logger.warning("Login flow failed: %s", sanitize_error_message(error.message))
        return error

    # =========================================================================
    # Consent URL
    # =========================================================================

    def build_auth_url(self, client_id: str, state: str) -> str:
        """Build the consent URL for offline access with forced re-consent."""
        params = {
            "client_id": client_id,
            "redirect_uri": self._redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{GOOGLE_AUTH_URI}?{urlencode(params)}"

    def _announce(self, auth_url: str) -> None:
        out = self._output or sys.stderr
        print("Opening browser for authentication...", file=out)
        print(f"If the browser doesn't open, visit: {auth_url}", file=out, flush=True)

        try:
            opened = self._open_browser(auth_url)
        except Exception as e:
            logger.warning("Could not open browser: %s", e)
            opened = False
        if not opened:
            logger.info("Browser not opened; waiting for the URL to be visited manually")

    # =========================================================================
    # Listener
    # =========================================================================

    @contextlib.contextmanager
    def _listening(self) -> Iterator[_CallbackServer]:
        """Bind the callback listener; it is closed exactly once on exit."""
        try:
            server = _CallbackServer(("localhost", self._port), self)
        except OSError as e:
            raise self._fail(
                OAuthListenerError(
                    f"Failed to start auth server on port {self._port}: {e.strerror or e}",
                    details={"port": self._port},
                )
            ) from e

        logger.debug("OAuth callback server bound to port %d", self._port)
        try:
            yield server
        finally:
            server.server_close()
            logger.debug("OAuth callback server on port %d closed", self._port)

    # =========================================================================
    # Flow
    # =========================================================================

    def run(
        self,
        client_id: str,
        client_secret: str,
        profile: str | None = None,
    ) -> FlowResult:
        """Run the login flow to completion.

        Args:
            client_id: OAuth client ID of the application.
            client_secret: OAuth client secret of the application.
            profile: Target profile. Defaults to ``default``.

        Returns:
            The committed profile and its account email (if it could be
            fetched).

        Raises:
            OAuthListenerError: If the callback port cannot be bound.
            OAuthCsrfMismatchError: If the callback state does not match.
            OAuthProviderError: If the provider reports an error or the
                code exchange fails.
            StorageError: If credentials or tokens cannot be committed.
        """
        if self._state is not FlowState.IDLE:
            raise OAuthFlowError(
                "Login flow already started; use a new controller for each attempt",
                details={"state": self._state.value},
            )

        self._profile = validate_profile_name(profile or DEFAULT_PROFILE)
        if not self._credentials.set_client_credentials(
            client_id, client_secret, profile=self._profile
        ):
            raise self._fail(
                StorageError(
                    f"Failed to store client credentials for profile '{self._profile}'"
                )
            )

        self._client_config = {
            # "installed" = Desktop app client type, required for loopback flows
            "installed": {
                "client_id": client_id,
                "client_secret": client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": [self._redirect_uri],
            }
        }
        self._state_token = secrets.token_hex(STATE_TOKEN_BYTES)
        auth_url = self.build_auth_url(client_id, self._state_token)
        logger.debug("Created auth URL with state: %s...", self._state_token[:8])

        with self._listening() as server:
            self._transition(FlowState.LISTENING)
            self._announce(auth_url)
            try:
                while self._state not in TERMINAL_STATES:
                    server.handle_request()
            except BaseException:
                if self._state not in TERMINAL_STATES:
                    self._fail(OAuthFlowError("Login flow interrupted"))
                raise

        if self._state is FlowState.FAILED:
            assert self._error is not None
            raise self._error

        assert self._result is not None
        return self._result

    def handle_callback(self, params: dict[str, str]) -> tuple[int, str]:
        """Process one request to the callback path.

        Args:
            params: Query parameters (first value of each).

        Returns:
            Tuple of (HTTP status, HTML page) for the browser.
        """
        if self._state is not FlowState.LISTENING:
            return 400, _page(
                "Invalid state parameter", "This login attempt is no longer active."
            )

        # Single use: consumed by this callback whatever its outcome
        expected, self._state_token = self._state_token, None

        error = params.get("error")
        if error:
            self._fail(
                OAuthProviderError(f"OAuth error: {error}", details={"oauth_error": error})
            )
            return 400, _page("Authentication failed", "You can close this window.")

        returned = params.get("state")
        if (
            not returned
            or expected is None
            or not secrets.compare_digest(returned.encode(), expected.encode())
        ):
            self._fail(
                OAuthCsrfMismatchError(
                    "CSRF validation failed: state parameter mismatch",
                    # Don't leak state values in error details
                    details={"hint": "Request may have been tampered with"},
                )
            )
            return 400, _page("Invalid state parameter", "Security validation failed.")

        code = params.get("code")
        if not code:
            self._fail(
                OAuthProviderError(
                    "No authorization code received",
                    details={"params": sorted(params)},
                )
            )
            return 400, _page("Missing authorization code")

        self._transition(FlowState.CODE_RECEIVED)
        return self._complete(code)

    def _complete(self, code: str) -> tuple[int, str]:
        assert self._profile is not None
        profile = self._profile
        self._transition(FlowState.EXCHANGING)

        try:
            tokens = self._exchange_code(code)
            if not self._credentials.set_tokens(tokens, profile=profile):
                raise StorageError(f"Failed to store tokens for profile '{profile}'")
            email = self._fetch_email(tokens)
            self._credentials.registry.add(profile, email, logged_in=True)
        except GmailCliError as e:
            self._fail(e)
            return 500, _page("Token exchange failed")
        except Exception as e:
            self._fail(
                OAuthProviderError(
                    f"Login failed: {sanitize_error_message(str(e))}",
                    details={"error_type": type(e).__name__},
                )
            )
            return 500, _page("Token exchange failed")

        self._result = FlowResult(profile=profile, email=email)
        self._transition(FlowState.COMMITTED)
        logger.info("Profile %s authenticated", profile)

        paragraphs = [f"Profile '{profile}' is now active."]
        if email:
            paragraphs.append(f"Logged in as {email}.")
        paragraphs.append("You can close this window and return to the terminal.")
        return 200, _page("Authentication successful!", *paragraphs)

    def _exchange_code(self, code: str) -> Tokens:
        """Exchange the authorization code at the token endpoint."""
        assert self._client_config is not None
        flow = Flow.from_client_config(
            self._client_config,
            scopes=SCOPES,
            redirect_uri=self._redirect_uri,
        )

        try:
            response = flow.fetch_token(code=code)
        except Exception as e:
            raise OAuthProviderError(
                f"Failed to exchange authorization code: {sanitize_error_message(str(e))}",
                details={"error_type": type(e).__name__},
            ) from e

        if not response or not response.get("access_token"):
            raise OAuthProviderError("No access token received")

        logger.info("Successfully exchanged authorization code for tokens")
        return Tokens.from_token_response(dict(response))

    def _fetch_email(self, tokens: Tokens) -> str | None:
        """Best-effort lookup of the account email; None on any failure."""
        credentials = Credentials(token=tokens.access_token)  # type: ignore[no-untyped-call]
        try:
            with AuthorizedSession(credentials) as session:
                response = session.get(GOOGLE_USERINFO_URI, timeout=30)
                response.raise_for_status()
                data = response.json()
        except (requests.RequestException, GoogleAuthError, ValueError) as e:
            logger.warning("Could not fetch account email: %s", type(e).__name__)
            return None

        email = data.get("email") if isinstance(data, dict) else None
        return email if isinstance(email, str) and email else None


__all__ = [
    "SCOPES",
    "GOOGLE_AUTH_URI",
    "GOOGLE_TOKEN_URI",
    "GOOGLE_USERINFO_URI",
    "REDIRECT_PORT",
    "CALLBACK_PATH",
    "FlowState",
    "FlowResult",
    "OAuthFlowController",
]
