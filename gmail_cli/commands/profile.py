"""Profile management commands.

Export bundles contain the client secret and refresh token in plain
text; export files are therefore created owner-only (0600).
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from gmail_cli.api.client import client_factory
from gmail_cli.auth.credentials import credential_manager
from gmail_cli.auth.profiles import validate_profile_name
from gmail_cli.commands.base import build_success_response, error_response_from_exception
from gmail_cli.middleware.audit_logger import audit_logger
from gmail_cli.utils.errors import ProfileExistsError, ValidationError

logger = logging.getLogger(__name__)

STDIO_PATH = "-"


async def profile_list() -> dict[str, Any]:
    """List every registered profile with its status."""
    try:
        profiles = credential_manager.list_profiles()
        return build_success_response(data=profiles, count=len(profiles))
    except Exception as e:
        return error_response_from_exception(e, "Listing profiles")


async def profile_current() -> dict[str, Any]:
    """Show the active profile."""
    try:
        registry = credential_manager.registry
        active = registry.get_active()
        return build_success_response(
            data={
                "profile": active,
                "email": registry.get_email(active),
                "registered": registry.exists(active),
            },
        )
    except Exception as e:
        return error_response_from_exception(e, "Reading current profile")


async def profile_switch(name: str) -> dict[str, Any]:
    """Make a registered profile the active one."""
    try:
        credential_manager.registry.set_active(name)
        audit_logger.log_auth_event("switch", profile=name)
        return build_success_response(
            data={"profile": name},
            message=f"Switched to profile '{name}'",
        )
    except Exception as e:
        audit_logger.log_auth_event("switch", profile=name, success=False, error_message=str(e))
        return error_response_from_exception(e, "Switching profile")


async def profile_delete(name: str) -> dict[str, Any]:
    """Unregister a non-active profile and delete its secrets."""
    try:
        secrets_deleted = credential_manager.remove_profile(name)
        client_factory.invalidate(name)
        audit_logger.log_auth_event(
            "delete", profile=name, details={"secrets_deleted": secrets_deleted}
        )
        message = f"Deleted profile '{name}'"
        if not secrets_deleted:
            message += " (some stored secrets could not be removed)"
        return build_success_response(
            data={"profile": name, "secrets_deleted": secrets_deleted},
            message=message,
        )
    except Exception as e:
        audit_logger.log_auth_event("delete", profile=name, success=False, error_message=str(e))
        return error_response_from_exception(e, "Deleting profile")


def _write_owner_only(path: Path, content: str) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)
    # O_CREAT mode does not apply to an existing file
    os.chmod(path, 0o600)


async def profile_export(
    profile: str | None = None,
    output: str | None = None,
) -> dict[str, Any]:
    """Export a profile as a version 1 bundle.

    Args:
        profile: Profile to export. Defaults to the active profile.
        output: File to write. ``-`` or None returns the bundle in the
            response data instead.
    """
    try:
        bundle = credential_manager.export_profile(profile)
        payload = bundle.to_dict()

        if output and output != STDIO_PATH:
            path = Path(output).expanduser()
            _write_owner_only(path, json.dumps(payload, indent=2) + "\n")
            audit_logger.log_auth_event(
                "export", profile=bundle.profile, details={"target": "file"}
            )
            logger.info("Exported profile %s to %s", bundle.profile, path)
            return build_success_response(
                data={"profile": bundle.profile, "path": str(path)},
                message=f"Exported profile '{bundle.profile}' to {path}",
            )

        audit_logger.log_auth_event("export", profile=bundle.profile, details={"target": "stdout"})
        return build_success_response(data=payload)

    except Exception as e:
        audit_logger.log_auth_event(
            "export", profile=profile, success=False, error_message=str(e)
        )
        return error_response_from_exception(e, "Export")


def _read_bundle(source: str | None) -> Any:
    if source and source != STDIO_PATH:
        text = Path(source).expanduser().read_text(encoding="utf-8")
    else:
        text = sys.stdin.read()

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(
            f"Export bundle is not valid JSON (line {e.lineno}, column {e.colno})",
            field="bundle",
        ) from e


async def profile_import(
    source: str | None = None,
    profile: str | None = None,
    force: bool = False,
) -> dict[str, Any]:
    """Import a bundle written by ``profile export``.

    Args:
        source: File to read. ``-`` or None reads stdin.
        profile: Target profile name. Defaults to the bundle's own name.
        force: Overwrite the target profile if it already exists.
    """
    try:
        bundle = _read_bundle(source)
        if not isinstance(bundle, dict):
            raise ValidationError("Export bundle must be a JSON object", field="bundle")

        target_name = profile or bundle.get("profile")
        if isinstance(target_name, str):
            target = validate_profile_name(target_name)
            if credential_manager.registry.exists(target) and not force:
                raise ProfileExistsError(target)

        imported = credential_manager.import_profile(bundle, target_profile=profile)
        client_factory.invalidate(imported)
        audit_logger.log_auth_event("import", profile=imported, details={"force": force})
        return build_success_response(
            data={"profile": imported, "email": credential_manager.registry.get_email(imported)},
            message=f"Imported profile '{imported}'",
        )

    except Exception as e:
        audit_logger.log_auth_event("import", profile=profile, success=False, error_message=str(e))
        return error_response_from_exception(e, "Import")


__all__ = [
    "profile_list",
    "profile_current",
    "profile_switch",
    "profile_delete",
    "profile_export",
    "profile_import",
]
