"""Profile-scoped secret storage with interchangeable backends.

Secrets are addressed by ``(profile, key)`` where ``key`` is one of
``client_id``, ``client_secret`` or ``tokens``. Two backends implement the
same :class:`SecretStore` interface:

- :class:`KeyringBackend`: one OS secret-store entry per ``(profile, key)``
  under the ``gmail-cli`` service, via the ``keyring`` library.
- :class:`FileBackend`: one JSON file per profile in an owner-only
  directory, optionally sealed with AES-256-GCM.

The backend is selected once per process by :func:`get_secret_store`.

Security considerations:
- Backend and platform failures never raise; reads return None and writes
  return False, so an unavailable store reads as "not authenticated"
- File writes go to an owner-only temporary file that is renamed over the
  target, so a crash can never leave a half-written credential file
- The credential directory is 0700 and every credential file 0600
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import Path

import keyring
from keyring.errors import PasswordDeleteError

from gmail_cli.auth.sealing import get_encryption_key, is_sealed, open_record, seal_record
from gmail_cli.utils.errors import InvalidProfileNameError, StorageError
from gmail_cli.utils.paths import APP_NAME, get_credentials_dir

logger = logging.getLogger(__name__)

SERVICE_NAME = APP_NAME

CLIENT_ID = "client_id"
CLIENT_SECRET = "client_secret"
TOKENS = "tokens"
STORE_KEYS = (CLIENT_ID, CLIENT_SECRET, TOKENS)

FILE_RECORD_VERSION = 1

_SAFE_PROFILE = re.compile(r"^[A-Za-z0-9_-]+$")


def _check_key(key: str) -> None:
    if key not in STORE_KEYS:
        raise ValueError(f"Unknown secret key {key!r}; expected one of {STORE_KEYS}")


class SecretStore(ABC):
    """Key/value secret persistence scoped by ``(profile, key)``.

    Subclasses implement :meth:`get`, :meth:`set` and :meth:`delete`.
    Deleting an absent key is a successful no-op.

    The legacy hooks address the pre-profile layout, where the three keys
    were stored unscoped. Backends without such a layout keep the default
    no-op implementations.
    """

    name: str = "abstract"

    @abstractmethod
    def get(self, profile: str, key: str) -> str | None:
        """Return the secret, or None if absent or unreadable."""

    @abstractmethod
    def set(self, profile: str, key: str, value: str) -> bool:
        """Store the secret. Returns True if committed."""

    @abstractmethod
    def delete(self, profile: str, key: str) -> bool:
        """Remove the secret. Returns True if committed (or already absent)."""

    def delete_profile(self, profile: str) -> bool:
        """Remove all well-known keys for a profile."""
        results = [self.delete(profile, key) for key in STORE_KEYS]
        return all(results)

    def get_legacy(self, key: str) -> str | None:
        """Return a secret stored under the unscoped legacy key."""
        return None

    def delete_legacy(self, key: str) -> bool:
        """Remove a secret stored under the unscoped legacy key."""
        return True


# =============================================================================
# OS secret store
# =============================================================================


class KeyringBackend(SecretStore):
    """Secret store backed by the OS keyring.

    Each ``(profile, key)`` pair maps to the keyring account
    ``profile:<profile>:<key>`` under a fixed service name. Legacy entries
    used the bare key as the account name.

    Example:
        >>> store = KeyringBackend()
        >>> store.set("work", "client_id", "123.apps.googleusercontent.com")
        True
        >>> store.get("work", "client_id")
        '123.apps.googleusercontent.com'
    """

    name = "keyring"

    def __init__(self, service: str = SERVICE_NAME) -> None:
        self._service = service

    @staticmethod
    def _account(profile: str, key: str) -> str:
        return f"profile:{profile}:{key}"

    def _read(self, account: str) -> str | None:
        try:
            return keyring.get_password(self._service, account)
        except Exception as e:
            # Locked store, missing daemon, denied access: treat as absent
            logger.debug("Keyring read failed for %s: %s", account, type(e).__name__)
            return None

    def _write(self, account: str, value: str) -> bool:
        try:
            keyring.set_password(self._service, account, value)
            return True
        except Exception as e:
            logger.warning("Keyring write failed for %s: %s", account, type(e).__name__)
            return False

    def _remove(self, account: str) -> bool:
        try:
            keyring.delete_password(self._service, account)
            return True
        except PasswordDeleteError:
            return True
        except Exception as e:
            logger.warning("Keyring delete failed for %s: %s", account, type(e).__name__)
            return False

    def get(self, profile: str, key: str) -> str | None:
        _check_key(key)
        return self._read(self._account(profile, key))

    def set(self, profile: str, key: str, value: str) -> bool:
        _check_key(key)
        return self._write(self._account(profile, key), value)

    def delete(self, profile: str, key: str) -> bool:
        _check_key(key)
        return self._remove(self._account(profile, key))

    def get_legacy(self, key: str) -> str | None:
        _check_key(key)
        return self._read(key)

    def delete_legacy(self, key: str) -> bool:
        _check_key(key)
        return self._remove(key)


# =============================================================================
# Permissioned files
# =============================================================================


class FileBackend(SecretStore):
    """Secret store backed by one owner-only JSON file per profile.

    Each file holds a small record::

        {"version": 1, "profile": "work",
         "client_id": "...", "client_secret": "...",
         "tokens": {"access_token": "...", "refresh_token": "..."}}

    With an encryption key the record is sealed before it is written (see
    :mod:`gmail_cli.auth.sealing`). Plain records remain readable.

    Attributes:
        _base_dir: Directory holding ``<profile>.json`` files.
        _key: Optional 32-byte sealing key.
    """

    name = "file"

    def __init__(self, base_dir: Path | None = None, key: bytes | None = None) -> None:
        """Initialize the file backend.

        Args:
            base_dir: Credential directory. Defaults to the platform
                credentials directory. Created on first write.
            key: Optional AES-256 key for sealing records at rest.
        """
        self._base_dir = base_dir if base_dir is not None else get_credentials_dir()
        self._key = key
        # Serializes read-modify-write cycles within the process
        self._lock = threading.RLock()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _path(self, profile: str) -> Path:
        if not _SAFE_PROFILE.match(profile):
            raise InvalidProfileNameError(profile)
        return self._base_dir / f"{profile}.json"

    def _ensure_dir(self) -> None:
        self._base_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        with contextlib.suppress(OSError):
            self._base_dir.chmod(0o700)

    def _read_record(self, profile: str) -> dict[str, object] | None:
        path = self._path(profile)
        if not path.exists():
            return None

        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Unreadable credential file for %s: %s", profile, type(e).__name__)
            return None

        if is_sealed(document):
            if self._key is None:
                logger.warning(
                    "Credential file for %s is sealed but TOKEN_ENCRYPTION_KEY is not set",
                    profile,
                )
                return None
            try:
                document = open_record(document, self._key)
            except StorageError as e:
                logger.warning("Could not open credential file for %s: %s", profile, e.message)
                return None

        if not isinstance(document, dict):
            logger.warning("Credential file for %s is not a JSON object", profile)
            return None
        return document

    def _write_record(self, profile: str, record: dict[str, object]) -> bool:
        path = self._path(profile)
        payload: dict[str, object] = record
        if self._key is not None:
            payload = dict(seal_record(record, self._key))

        tmp_path: str | None = None
        try:
            self._ensure_dir()
            # mkstemp creates the file 0600 with a unique name per write
            fd, tmp_path = tempfile.mkstemp(
                dir=self._base_dir, prefix=f".{profile}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(json.dumps(payload, indent=2))
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, path)
            return True
        except OSError as e:
            logger.warning("Failed to write credential file for %s: %s", profile, e)
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)
            return False

    def get(self, profile: str, key: str) -> str | None:
        _check_key(key)
        record = self._read_record(profile)
        if record is None:
            return None

        value = record.get(key)
        if key == TOKENS:
            return json.dumps(value) if value else None
        return value if isinstance(value, str) and value else None

    def set(self, profile: str, key: str, value: str) -> bool:
        _check_key(key)
        stored: object = value
        if key == TOKENS:
            try:
                stored = json.loads(value)
            except json.JSONDecodeError:
                logger.warning("Refusing to store non-JSON tokens for %s", profile)
                return False

        with self._lock:
            record = self._read_record(profile) or {
                "version": FILE_RECORD_VERSION,
                "profile": profile,
            }
            record[key] = stored
            return self._write_record(profile, record)

    def delete(self, profile: str, key: str) -> bool:
        _check_key(key)
        with self._lock:
            record = self._read_record(profile)
            if record is None or key not in record:
                return True
            del record[key]
            return self._write_record(profile, record)

    def delete_profile(self, profile: str) -> bool:
        path = self._path(profile)
        with self._lock:
            try:
                path.unlink(missing_ok=True)
                return True
            except OSError as e:
                logger.warning("Failed to delete credential file for %s: %s", profile, e)
                return False


# =============================================================================
# Backend selection
# =============================================================================


@lru_cache(maxsize=1)
def get_secret_store() -> SecretStore:
    """Return the process-wide secret store.

    Selected from ``GMAIL_CLI_STORAGE`` (``keyring`` or ``file``) on first
    call and cached for the life of the process.
    """
    mode = os.getenv("GMAIL_CLI_STORAGE", "keyring").strip().lower()

    store: SecretStore
    if mode == "file":
        store = FileBackend(get_credentials_dir(), key=get_encryption_key())
    else:
        if mode != "keyring":
            logger.warning("Unknown GMAIL_CLI_STORAGE %r, using keyring", mode)
        store = KeyringBackend()

    logger.debug("Using %s secret store", store.name)
    return store


__all__ = [
    "SERVICE_NAME",
    "CLIENT_ID",
    "CLIENT_SECRET",
    "TOKENS",
    "STORE_KEYS",
    "SecretStore",
    "KeyringBackend",
    "FileBackend",
    "get_secret_store",
]
