"""Platform-conventional locations for gmail-cli state."""

from __future__ import annotations

import os
import sys
from pathlib import Path

APP_NAME = "gmail-cli"


def get_config_dir() -> Path:
    """Return the configuration directory for this platform.

    ``GMAIL_CLI_CONFIG_DIR`` overrides the platform default.
    """
    override = os.getenv("GMAIL_CLI_CONFIG_DIR")
    if override:
        return Path(override).expanduser()

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME
    if sys.platform == "win32":
        appdata = os.getenv("APPDATA")
        return (Path(appdata) if appdata else Path.home()) / APP_NAME
    return Path.home() / ".config" / APP_NAME


def get_registry_path() -> Path:
    """Path of the profile registry record."""
    return get_config_dir() / "config.json"


def get_credentials_dir() -> Path:
    """Directory of per-profile credential files (file backend)."""
    override = os.getenv("GMAIL_CLI_CREDENTIALS_DIR")
    if override:
        return Path(override).expanduser()
    return get_config_dir() / "credentials"


__all__ = [
    "APP_NAME",
    "get_config_dir",
    "get_registry_path",
    "get_credentials_dir",
]
