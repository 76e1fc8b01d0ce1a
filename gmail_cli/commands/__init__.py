"""Command implementations for gmail-cli.

Each command is an async function returning a response dict
(``status`` plus ``data`` or ``error``); none of them raise.
"""

from gmail_cli.commands.auth import auth_login, auth_logout, auth_status
from gmail_cli.commands.profile import (
    profile_current,
    profile_delete,
    profile_export,
    profile_import,
    profile_list,
    profile_switch,
)

__all__ = [
    # Auth
    "auth_login",
    "auth_status",
    "auth_logout",
    # Profiles
    "profile_list",
    "profile_current",
    "profile_switch",
    "profile_delete",
    "profile_export",
    "profile_import",
]
