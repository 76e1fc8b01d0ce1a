"""Custom exception hierarchy for gmail-cli.

This module defines a structured exception hierarchy for the error
conditions of the authentication core: missing credentials, OAuth flow
failures, profile lifecycle violations, corrupted configuration and
export bundle problems.

Secret-store backend failures are intentionally NOT represented here;
backends report them as ``None`` / ``False`` so that an unavailable
keyring reads as "not authenticated" rather than crashing the caller.
"""

from __future__ import annotations


class GmailCliError(Exception):
    """Base exception for all gmail-cli errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# Authentication
# =============================================================================


class AuthenticationError(GmailCliError):
    """Exception raised for OAuth and credential-related errors."""

    pass


class NotAuthenticatedError(AuthenticationError):
    """No client credentials or no tokens resolve for a profile.

    Recoverable by running the login flow for that profile.

    Attributes:
        profile: The resolved profile name.
    """

    def __init__(
        self,
        profile: str,
        message: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message or f"Profile '{profile}' not authenticated.", details)
        self.profile = profile


class MissingCredentialsError(AuthenticationError):
    """Client credentials are absent for a profile being exported."""

    def __init__(self, profile: str) -> None:
        super().__init__(f"No client credentials stored for profile '{profile}'.")
        self.profile = profile


class MissingTokensError(AuthenticationError):
    """Tokens are absent for a profile being exported."""

    def __init__(self, profile: str) -> None:
        super().__init__(f"No tokens stored for profile '{profile}'.")
        self.profile = profile


class OAuthFlowError(AuthenticationError):
    """Base class for failures that terminate a login flow."""

    pass


class OAuthCsrfMismatchError(OAuthFlowError):
    """The callback ``state`` did not match the flow's issued token."""

    pass


class OAuthProviderError(OAuthFlowError):
    """The provider reported an error or the code exchange failed.

    Examples:
        - ``error=access_denied`` on the callback
        - Callback without an authorization code
        - Token response without an access token
    """

    pass


class OAuthListenerError(OAuthFlowError):
    """The loopback callback listener could not be bound."""

    pass


# =============================================================================
# Profiles
# =============================================================================


class ProfileError(GmailCliError):
    """Base class for profile lifecycle errors."""

    def __init__(
        self,
        profile: str,
        message: str,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.profile = profile


class ProfileNotFoundError(ProfileError):
    """The named profile is not registered."""

    def __init__(self, profile: str) -> None:
        super().__init__(profile, f"Profile '{profile}' not found.")


class ActiveProfileProtectedError(ProfileError):
    """Attempted to delete the currently active profile."""

    def __init__(self, profile: str) -> None:
        super().__init__(
            profile,
            f"Cannot delete active profile '{profile}'. "
            "Switch to another profile first.",
        )


class ProfileExistsError(ProfileError):
    """Import target already exists and overwrite was not authorized."""

    def __init__(self, profile: str) -> None:
        super().__init__(
            profile,
            f"Profile '{profile}' already exists. Use --force to overwrite.",
        )


# =============================================================================
# Validation and configuration
# =============================================================================


class ValidationError(GmailCliError):
    """Exception raised for input validation errors.

    Attributes:
        field: The name of the field that failed validation, if applicable.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field


class InvalidProfileNameError(ValidationError):
    """Profile name does not match ``^[A-Za-z0-9_-]+$``."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Invalid profile name '{name[:64]}'. "
            "Use only letters, numbers, hyphens, and underscores.",
            field="profile",
        )
        self.name = name


class UnsupportedBundleVersionError(ValidationError):
    """Export bundle carries an unknown schema version."""

    def __init__(self, version: object) -> None:
        super().__init__(
            f"Unsupported export bundle version: {version!r}",
            field="version",
            details={"supported_versions": [1]},
        )
        self.version = version


class CorruptConfigError(GmailCliError):
    """The profile registry record failed structural validation.

    Fatal: the record is never auto-repaired.

    Attributes:
        path: Location of the corrupted record.
    """

    def __init__(self, path: str, reason: str | None = None) -> None:
        message = f"Config file is corrupted. Delete {path} and re-authenticate."
        if reason:
            message = (
                f"Config file is corrupted ({reason}). "
                f"Delete {path} and re-authenticate."
            )
        super().__init__(message)
        self.path = path


class StorageError(GmailCliError):
    """A secret could not be committed, sealed, or opened."""

    pass


__all__ = [
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
