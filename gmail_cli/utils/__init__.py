"""Utility functions and helpers for gmail-cli.

This module provides the exception hierarchy, secret redaction for
user-facing messages, and platform path resolution.
"""

from gmail_cli.utils.errors import (
    ActiveProfileProtectedError,
    AuthenticationError,
    CorruptConfigError,
    GmailCliError,
    InvalidProfileNameError,
    MissingCredentialsError,
    MissingTokensError,
    NotAuthenticatedError,
    OAuthCsrfMismatchError,
    OAuthFlowError,
    OAuthListenerError,
    OAuthProviderError,
    ProfileError,
    ProfileExistsError,
    ProfileNotFoundError,
    StorageError,
    UnsupportedBundleVersionError,
    ValidationError,
)
from gmail_cli.utils.paths import get_config_dir, get_credentials_dir, get_registry_path
from gmail_cli.utils.redaction import sanitize_error_message

__all__ = [
    # Paths
    "get_config_dir",
    "get_credentials_dir",
    "get_registry_path",
    # Redaction
    "sanitize_error_message",
    # Exception hierarchy
    "GmailCliError",
    "AuthenticationError",
    "NotAuthenticatedError",
    "MissingCredentialsError",
    "MissingTokensError",
    "OAuthFlowError",
    "OAuthCsrfMismatchError",
    "OAuthProviderError",
    "OAuthListenerError",
    "ProfileError",
    "ProfileNotFoundError",
    "ActiveProfileProtectedError",
    "ProfileExistsError",
    "ValidationError",
    "InvalidProfileNameError",
    "UnsupportedBundleVersionError",
    "CorruptConfigError",
    "StorageError",
]
