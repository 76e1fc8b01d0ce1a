"""Durable registry of profiles and the active-profile pointer.

The registry is a single JSON record at the platform configuration path::

    {"activeProfile": "work",
     "profiles": {"work": {"email": "a@x.com"}, "personal": {}}}

It holds no secrets. A missing record is a fresh registry whose active
pointer is ``"default"`` with no existing profiles. A record that fails
structural validation is fatal (:class:`CorruptConfigError`) and is never
repaired automatically.
"""

from __future__ import annotations

import contextlib
import logging
import os
import re
import tempfile
import threading
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from gmail_cli.utils.errors import (
    ActiveProfileProtectedError,
    CorruptConfigError,
    InvalidProfileNameError,
    ProfileNotFoundError,
)
from gmail_cli.utils.paths import get_registry_path

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "default"
PROFILE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_profile_name(name: str) -> str:
    """Return ``name`` if it is a valid profile name.

    Raises:
        InvalidProfileNameError: If the name is empty or contains characters
            other than letters, digits, hyphens and underscores.
    """
    if not isinstance(name, str) or not PROFILE_NAME_PATTERN.fullmatch(name):
        raise InvalidProfileNameError(str(name))
    return name


class ProfileMetadata(BaseModel):
    """Cached, non-secret metadata for one profile.

    ``logged_in`` is set once an interactive login commits, even when the
    account email could not be looked up.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: str | None = None
    logged_in: bool | None = Field(None, alias="loggedIn")


class RegistryRecord(BaseModel):
    """On-disk shape of the registry."""

    model_config = ConfigDict(populate_by_name=True)

    active_profile: str = Field(..., alias="activeProfile")
    profiles: dict[str, ProfileMetadata]

    @field_validator("active_profile")
    @classmethod
    def _check_active(cls, value: str) -> str:
        if not PROFILE_NAME_PATTERN.fullmatch(value):
            raise ValueError("activeProfile is not a valid profile name")
        return value

    @field_validator("profiles")
    @classmethod
    def _check_names(cls, value: dict[str, ProfileMetadata]) -> dict[str, ProfileMetadata]:
        for name in value:
            if not PROFILE_NAME_PATTERN.fullmatch(name):
                raise ValueError(f"invalid profile name {name!r}")
        return value


class ProfileRegistry:
    """File-backed record of known profiles and the active one.

    Every operation loads the record, applies the change and writes it back
    atomically under a process-local lock.

    Attributes:
        _path: Registry file location; None means the platform default,
            resolved on each access.

    Example:
        >>> registry = ProfileRegistry(Path("/tmp/config.json"))
        >>> registry.add("work", "a@x.com")
        >>> registry.get_active()
        'work'
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path if self._path is not None else get_registry_path()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def load(self) -> RegistryRecord:
        """Load the registry record.

        Raises:
            CorruptConfigError: If the record cannot be read as UTF-8, is not
                valid JSON or is missing required fields.
        """
        path = self.path
        if not path.exists():
            return RegistryRecord(active_profile=DEFAULT_PROFILE, profiles={})

        try:
            raw = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            logger.error("Registry record at %s is not UTF-8", path)
            raise CorruptConfigError(str(path), "invalid encoding") from e
        except OSError as e:
            logger.error("Registry record at %s is unreadable: %s", path, e)
            raise CorruptConfigError(str(path), "unreadable file") from e

        try:
            return RegistryRecord.model_validate_json(raw)
        except PydanticValidationError as e:
            invalid_json = any(err.get("type") == "json_invalid" for err in e.errors())
            reason = "invalid JSON" if invalid_json else "missing or invalid fields"
            logger.error("Registry record at %s failed validation: %s", path, reason)
            raise CorruptConfigError(str(path), reason) from e

    def save(self, record: RegistryRecord) -> None:
        """Write the registry record atomically."""
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        data = record.model_dump_json(by_alias=True, exclude_none=True, indent=2)

        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".config.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data)
            os.replace(tmp_path, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            raise

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_active(self) -> str:
        return self.load().active_profile

    def list_profiles(self) -> set[str]:
        return set(self.load().profiles)

    def exists(self, name: str) -> bool:
        return name in self.load().profiles

    def get_email(self, name: str) -> str | None:
        metadata = self.load().profiles.get(name)
        return metadata.email if metadata else None

    def has_logged_in(self, name: str) -> bool:
        """True once the profile completed a login or has a cached email."""
        metadata = self.load().profiles.get(name)
        return metadata is not None and bool(metadata.email or metadata.logged_in)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def set_active(self, name: str) -> None:
        """Point the active profile at an existing profile.

        Raises:
            InvalidProfileNameError: If the name is malformed.
            ProfileNotFoundError: If the profile is not registered.
        """
        validate_profile_name(name)
        with self._lock:
            record = self.load()
            if name not in record.profiles:
                raise ProfileNotFoundError(name)
            record.active_profile = name
            self.save(record)
        logger.info("Active profile set to %s", name)

    def add(
        self,
        name: str,
        email: str | None = None,
        activate: bool = True,
        logged_in: bool = False,
    ) -> None:
        """Register a profile (idempotent upsert) and make it active.

        An existing cached email is kept when ``email`` is None.

        Args:
            name: Profile name.
            email: Optional account email to cache.
            activate: Make the profile active. Only the legacy migration
                passes False, and only when other profiles already exist.
            logged_in: Record that an interactive login committed. The
                flag is never cleared.
        """
        validate_profile_name(name)
        with self._lock:
            record = self.load()
            metadata = record.profiles.get(name) or ProfileMetadata()
            if email is not None:
                metadata.email = email
            if logged_in:
                metadata.logged_in = True
            record.profiles[name] = metadata
            if activate or record.active_profile not in record.profiles:
                record.active_profile = name
            self.save(record)
        logger.info("Registered profile %s", name)

    def remove(self, name: str) -> None:
        """Unregister a non-active profile.

        Raises:
            ProfileNotFoundError: If the profile is not registered.
            ActiveProfileProtectedError: If the profile is active.
        """
        validate_profile_name(name)
        with self._lock:
            record = self.load()
            if name not in record.profiles:
                raise ProfileNotFoundError(name)
            if record.active_profile == name:
                raise ActiveProfileProtectedError(name)
            del record.profiles[name]
            self.save(record)
        logger.info("Removed profile %s", name)

    def set_email(self, name: str, email: str) -> None:
        """Cache the account email for a registered profile.

        Raises:
            ProfileNotFoundError: If the profile is not registered.
        """
        validate_profile_name(name)
        with self._lock:
            record = self.load()
            metadata = record.profiles.get(name)
            if metadata is None:
                raise ProfileNotFoundError(name)
            metadata.email = email
            self.save(record)


# Global singleton instance
profile_registry = ProfileRegistry()


__all__ = [
    "DEFAULT_PROFILE",
    "PROFILE_NAME_PATTERN",
    "ProfileMetadata",
    "RegistryRecord",
    "ProfileRegistry",
    "profile_registry",
    "validate_profile_name",
]
