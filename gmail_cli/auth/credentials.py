"""Profile-scoped client credentials and tokens.

:class:`CredentialManager` is the only component that combines the profile
registry with the secret store. It resolves the target profile (the active
one when omitted), runs the legacy-layout migration before every read,
applies the environment fallback for the ``default`` profile, and moves
whole profiles in and out of the process as export bundles.

Environment fallback (profile ``default`` only, and only until its first
completed login, recorded as a cached email or the registry ``loggedIn`` flag):

- ``GOOGLE_CLIENT_ID`` / ``GMAIL_CLIENT_ID``
- ``GOOGLE_CLIENT_SECRET`` / ``GMAIL_CLIENT_SECRET``
- ``GOOGLE_TOKENS`` / ``GMAIL_TOKENS`` (JSON token blob)
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from gmail_cli.auth.models import EXPORT_BUNDLE_VERSION, ClientCredentials, ExportBundle, Tokens
from gmail_cli.auth.profiles import (
    DEFAULT_PROFILE,
    ProfileRegistry,
    profile_registry,
    validate_profile_name,
)
from gmail_cli.auth.storage import (
    CLIENT_ID,
    CLIENT_SECRET,
    STORE_KEYS,
    TOKENS,
    SecretStore,
    get_secret_store,
)
from gmail_cli.utils.errors import (
    MissingCredentialsError,
    MissingTokensError,
    StorageError,
    UnsupportedBundleVersionError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ENV_CLIENT_ID = ("GOOGLE_CLIENT_ID", "GMAIL_CLIENT_ID")
ENV_CLIENT_SECRET = ("GOOGLE_CLIENT_SECRET", "GMAIL_CLIENT_SECRET")
ENV_TOKENS = ("GOOGLE_TOKENS", "GMAIL_TOKENS")


def _first_env(names: tuple[str, ...]) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


class CredentialManager:
    """Profile-scoped read/write of client credentials and tokens.

    Attributes:
        _registry: Profile registry; None means the process-wide instance.
        _store: Secret store; None means the process-wide backend.

    Example:
        >>> manager = CredentialManager()
        >>> manager.set_tokens(Tokens(access_token="ya29..."), profile="work")
        True
        >>> manager.is_authenticated("work")
        False  # no client credentials yet
    """

    def __init__(
        self,
        registry: ProfileRegistry | None = None,
        store: SecretStore | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._migration_lock = threading.Lock()
        self._migration_done = False

    @property
    def registry(self) -> ProfileRegistry:
        return self._registry if self._registry is not None else profile_registry

    @property
    def store(self) -> SecretStore:
        return self._store if self._store is not None else get_secret_store()

    def resolve_profile(self, profile: str | None = None) -> str:
        """Return ``profile`` (or the active profile), validated."""
        name = profile if profile is not None else self.registry.get_active()
        return validate_profile_name(name)

    # =========================================================================
    # Legacy migration
    # =========================================================================

    def migrate_legacy_credentials(self) -> bool:
        """Move unscoped legacy secrets under the ``default`` profile.

        Each legacy value is copied to the scoped key first and the legacy
        key is deleted only after the copy committed. ``default`` is then
        registered if it is not already. Once a check finds nothing left to
        move, later calls return immediately.

        Returns:
            True if any legacy secret was found on this call.
        """
        with self._migration_lock:
            if self._migration_done:
                return False

            store = self.store
            found = {key: store.get_legacy(key) for key in STORE_KEYS}
            found = {key: value for key, value in found.items() if value}
            if not found:
                self._migration_done = True
                return False

            complete = True
            for key, value in found.items():
                # A scoped value means an earlier copy committed; only the delete is left
                if store.get(DEFAULT_PROFILE, key) is None and not store.set(
                    DEFAULT_PROFILE, key, value
                ):
                    complete = False
                    logger.warning("Could not migrate legacy %s; will retry", key)
                    continue
                if not store.delete_legacy(key):
                    complete = False
                    logger.warning("Could not delete legacy %s; will retry", key)

            registry = self.registry
            if not registry.exists(DEFAULT_PROFILE):
                registry.add(DEFAULT_PROFILE, activate=not registry.list_profiles())

            self._migration_done = complete
            logger.info("Migrated legacy credentials to profile '%s'", DEFAULT_PROFILE)
            return True

    def _env_fallback_allowed(self, profile: str) -> bool:
        return profile == DEFAULT_PROFILE and not self.registry.has_logged_in(profile)

    # =========================================================================
    # Client credentials
    # =========================================================================

    def get_client_credentials(self, profile: str | None = None) -> ClientCredentials | None:
        """Return both client credentials for a profile, or None.

        A partial pair (only id or only secret) is reported as None.
        """
        p = self.resolve_profile(profile)
        self.migrate_legacy_credentials()

        client_id = self.store.get(p, CLIENT_ID)
        client_secret = self.store.get(p, CLIENT_SECRET)
        if self._env_fallback_allowed(p):
            client_id = client_id or _first_env(ENV_CLIENT_ID)
            client_secret = client_secret or _first_env(ENV_CLIENT_SECRET)

        if not client_id or not client_secret:
            return None
        return ClientCredentials(client_id=client_id, client_secret=client_secret)

    def set_client_credentials(
        self, client_id: str, client_secret: str, profile: str | None = None
    ) -> bool:
        """Store client credentials. Returns True if both keys committed."""
        p = self.resolve_profile(profile)
        if not client_id or not client_secret:
            raise ValidationError(
                "Client ID and client secret are both required", field="client_credentials"
            )

        committed = self.store.set(p, CLIENT_ID, client_id)
        committed = self.store.set(p, CLIENT_SECRET, client_secret) and committed
        if not committed:
            logger.warning("Client credentials for %s were not fully committed", p)
        return committed

    # =========================================================================
    # Tokens
    # =========================================================================

    def get_tokens(self, profile: str | None = None) -> Tokens | None:
        """Return stored tokens, or None if absent or malformed.

        Malformed stored JSON only forces re-authentication; it is logged
        and reported as absent.
        """
        p = self.resolve_profile(profile)
        self.migrate_legacy_credentials()

        raw = self.store.get(p, TOKENS)
        if not raw and self._env_fallback_allowed(p):
            raw = _first_env(ENV_TOKENS)
        if not raw:
            return None

        try:
            return Tokens.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning("Stored tokens for profile %s are malformed; ignoring", p)
            return None

    def set_tokens(self, tokens: Tokens, profile: str | None = None) -> bool:
        """Store tokens. Returns True if committed."""
        p = self.resolve_profile(profile)
        committed = self.store.set(p, TOKENS, tokens.to_json())
        if not committed:
            logger.warning("Tokens for %s were not committed", p)
        return committed

    def is_authenticated(self, profile: str | None = None) -> bool:
        p = self.resolve_profile(profile)
        return self.get_client_credentials(p) is not None and self.get_tokens(p) is not None

    def logout(self, profile: str | None = None) -> bool:
        """Delete only the tokens; client credentials are kept for re-login."""
        p = self.resolve_profile(profile)
        return self.store.delete(p, TOKENS)

    # =========================================================================
    # Profile lifecycle
    # =========================================================================

    def delete_profile_credentials(self, profile: str) -> bool:
        """Delete every stored secret of a profile, unconditionally."""
        p = validate_profile_name(profile)
        return self.store.delete_profile(p)

    def remove_profile(self, profile: str) -> bool:
        """Unregister a profile and delete its secrets.

        Raises:
            ProfileNotFoundError: If the profile is not registered.
            ActiveProfileProtectedError: If the profile is active.

        Returns:
            True if the secrets were deleted as well.
        """
        self.registry.remove(profile)
        deleted = self.delete_profile_credentials(profile)
        if not deleted:
            logger.warning("Profile %s unregistered but its secrets were not deleted", profile)
        return deleted

    def list_profiles(self) -> list[dict[str, Any]]:
        """Describe every registered profile, sorted by name."""
        active = self.registry.get_active()
        return [
            {
                "name": name,
                "email": self.registry.get_email(name),
                "active": name == active,
                "authenticated": self.is_authenticated(name),
            }
            for name in sorted(self.registry.list_profiles())
        ]

    # =========================================================================
    # Export / import
    # =========================================================================

    def export_profile(self, profile: str | None = None) -> ExportBundle:
        """Snapshot a profile's full credential state.

        Raises:
            MissingCredentialsError: If client credentials are absent.
            MissingTokensError: If tokens are absent.
        """
        p = self.resolve_profile(profile)

        credentials = self.get_client_credentials(p)
        if credentials is None:
            raise MissingCredentialsError(p)
        tokens = self.get_tokens(p)
        if tokens is None:
            raise MissingTokensError(p)

        return ExportBundle(
            version=EXPORT_BUNDLE_VERSION,
            profile=p,
            email=self.registry.get_email(p),
            client_id=credentials.client_id,
            client_secret=credentials.client_secret,
            tokens=tokens,
        )

    def import_profile(
        self,
        bundle: ExportBundle | dict[str, Any],
        target_profile: str | None = None,
    ) -> str:
        """Write an export bundle under ``target_profile`` (or its own name).

        Overwriting an existing profile is not checked here; the command
        boundary authorizes it.

        Returns:
            The profile name the bundle was imported as.

        Raises:
            UnsupportedBundleVersionError: If ``version`` is not 1.
            ValidationError: If the bundle is structurally invalid.
            StorageError: If the secrets could not be committed.
        """
        if isinstance(bundle, ExportBundle):
            version: object = bundle.version
        elif isinstance(bundle, dict):
            version = bundle.get("version")
        else:
            raise ValidationError("Export bundle must be a JSON object", field="bundle")

        if type(version) is not int or version != EXPORT_BUNDLE_VERSION:
            raise UnsupportedBundleVersionError(version)

        if isinstance(bundle, dict):
            try:
                bundle = ExportBundle.model_validate(bundle)
            except PydanticValidationError as e:
                # Field locations only; input values may be secrets
                fields = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
                raise ValidationError(
                    "Invalid export bundle",
                    field="bundle",
                    details={"invalid_fields": fields},
                ) from e

        target = validate_profile_name(target_profile or bundle.profile)

        committed = self.set_client_credentials(
            bundle.client_id, bundle.client_secret, profile=target
        )
        committed = self.set_tokens(bundle.tokens, profile=target) and committed
        if not committed:
            raise StorageError(
                f"Failed to store imported credentials for profile '{target}'",
                details={"backend": self.store.name},
            )

        self.registry.add(target, bundle.email)
        logger.info("Imported profile %s", target)
        return target


# Global singleton instance
credential_manager = CredentialManager()


__all__ = [
    "CredentialManager",
    "credential_manager",
]
