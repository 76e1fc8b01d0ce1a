"""Pytest configuration and fixtures for gmail-cli tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import keyring
import pytest
from keyring.backend import KeyringBackend as BaseKeyring
from keyring.errors import KeyringError, PasswordDeleteError

from gmail_cli.auth.credentials import CredentialManager
from gmail_cli.auth.models import Tokens
from gmail_cli.auth.profiles import ProfileRegistry
from gmail_cli.auth.storage import FileBackend, get_secret_store

ENV_VARS = (
    "GOOGLE_CLIENT_ID",
    "GMAIL_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GMAIL_CLIENT_SECRET",
    "GOOGLE_TOKENS",
    "GMAIL_TOKENS",
    "TOKEN_ENCRYPTION_KEY",
    "GMAIL_CLI_STORAGE",
    "GMAIL_CLI_CREDENTIALS_DIR",
    "OAUTH_PORT",
)


class MemoryKeyring(BaseKeyring):
    """In-memory keyring backend."""

    priority = 1  # type: ignore[assignment]

    def __init__(self) -> None:
        super().__init__()
        self.entries: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self.entries.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.entries[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        if (service, username) not in self.entries:
            raise PasswordDeleteError("not found")
        del self.entries[(service, username)]


class BrokenKeyring(BaseKeyring):
    """Keyring backend whose every operation fails, like a locked store."""

    priority = 1  # type: ignore[assignment]

    def get_password(self, service: str, username: str) -> str | None:
        raise KeyringError("locked")

    def set_password(self, service: str, username: str, password: str) -> None:
        raise KeyringError("locked")

    def delete_password(self, service: str, username: str) -> None:
        raise KeyringError("locked")


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep tests away from the real config directory and env fallbacks."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GMAIL_CLI_CONFIG_DIR", str(tmp_path / "config"))
    get_secret_store.cache_clear()
    yield
    get_secret_store.cache_clear()


@pytest.fixture
def memory_keyring() -> Iterator[MemoryKeyring]:
    """Install an in-memory keyring for the duration of a test."""
    previous = keyring.get_keyring()
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)


@pytest.fixture
def broken_keyring() -> Iterator[BrokenKeyring]:
    """Install a keyring that fails every call."""
    previous = keyring.get_keyring()
    backend = BrokenKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)


@pytest.fixture
def registry(tmp_path: Path) -> ProfileRegistry:
    """Profile registry in a temporary directory."""
    return ProfileRegistry(tmp_path / "config" / "config.json")


@pytest.fixture
def file_store(tmp_path: Path) -> FileBackend:
    """Unsealed file backend in a temporary directory."""
    return FileBackend(tmp_path / "credentials")


@pytest.fixture
def manager(registry: ProfileRegistry, file_store: FileBackend) -> CredentialManager:
    """Credential manager over the temporary registry and file backend."""
    return CredentialManager(registry=registry, store=file_store)


@pytest.fixture
def mock_tokens() -> Tokens:
    """Fixture providing a complete token set."""
    return Tokens(
        access_token="ya29.mock-access-token",
        refresh_token="1//mock-refresh-token",
        expiry_date=1_900_000_000_000,
    )


@pytest.fixture
def authenticated_profile(manager: CredentialManager, mock_tokens: Tokens) -> str:
    """Register profile ``work`` with client credentials, tokens and an email."""
    manager.set_client_credentials(
        "test-client-id.apps.googleusercontent.com", "GOCSPX-test-secret", profile="work"
    )
    manager.set_tokens(mock_tokens, profile="work")
    manager.registry.add("work", "work@example.com")
    return "work"
