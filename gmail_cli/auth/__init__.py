"""Authentication and credential management for gmail-cli.

This module provides multi-profile OAuth 2.0 authentication, including:

- Profile registry (named identities and the active pointer)
- Profile-scoped secret storage (OS keyring or owner-only files,
  optionally sealed with AES-256-GCM)
- Credential management, legacy migration, export and import
- The authorization-code login flow with a loopback callback listener

Usage:
    >>> from gmail_cli.auth import OAuthFlowController, credential_manager
    >>>
    >>> # Log in (opens browser)
    >>> OAuthFlowController().run(client_id, client_secret, profile="work")
    >>>
    >>> # Move the profile to another machine
    >>> bundle = credential_manager.export_profile("work")
    >>> credential_manager.import_profile(bundle.to_dict(), "work")
"""

from gmail_cli.auth.credentials import CredentialManager, credential_manager
from gmail_cli.auth.models import ClientCredentials, ExportBundle, Tokens, merge_tokens
from gmail_cli.auth.oauth import (
    GOOGLE_AUTH_URI,
    GOOGLE_TOKEN_URI,
    SCOPES,
    FlowResult,
    FlowState,
    OAuthFlowController,
)
from gmail_cli.auth.profiles import (
    DEFAULT_PROFILE,
    ProfileRegistry,
    profile_registry,
    validate_profile_name,
)
from gmail_cli.auth.storage import FileBackend, KeyringBackend, SecretStore, get_secret_store

__all__ = [
    # Profiles
    "DEFAULT_PROFILE",
    "ProfileRegistry",
    "profile_registry",
    "validate_profile_name",
    # Storage
    "SecretStore",
    "KeyringBackend",
    "FileBackend",
    "get_secret_store",
    # Models
    "ClientCredentials",
    "ExportBundle",
    "Tokens",
    "merge_tokens",
    # Credentials
    "CredentialManager",
    "credential_manager",
    # OAuth
    "OAuthFlowController",
    "FlowState",
    "FlowResult",
    "SCOPES",
    "GOOGLE_AUTH_URI",
    "GOOGLE_TOKEN_URI",
]
