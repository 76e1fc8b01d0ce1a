"""Entry point for gmail-cli."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import Coroutine, Sequence
from typing import Any

from dotenv import load_dotenv

from gmail_cli import __version__


def configure_logging() -> None:
    """Configure logging to stderr.

    stdout carries the JSON command output, so all logs go to stderr.

    Respects LOG_LEVEL env var (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    log_level_str = os.getenv("LOG_LEVEL", "WARNING").upper()
    log_level = logging.getLevelNamesMapping().get(log_level_str, logging.WARNING)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    # Reduce noise from Google and HTTP libraries
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)
    logging.getLogger("google.auth").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser.

    ``--profile`` is accepted both before and after the subcommand.
    """
    # SUPPRESS keeps a subcommand's --profile from overwriting the global one
    profile_option = argparse.ArgumentParser(add_help=False)
    profile_option.add_argument(
        "--profile", default=argparse.SUPPRESS, help="Profile to act on"
    )

    parser = argparse.ArgumentParser(
        prog="gmail-cli",
        description="Manage Google account authentication profiles.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--profile", default=None, help="Profile to act on (default: active)")
    parser.add_argument(
        "--compact", action="store_true", help="Print JSON output on a single line"
    )
    groups = parser.add_subparsers(dest="group", required=True)

    # auth
    auth = groups.add_parser("auth", help="Sign in and out")
    auth_commands = auth.add_subparsers(dest="command", required=True)

    login = auth_commands.add_parser(
        "login", parents=[profile_option], help="Sign in through the browser"
    )
    login.add_argument("--client-id", help="OAuth client ID (optional once stored)")
    login.add_argument("--client-secret", help="OAuth client secret (optional once stored)")
    auth_commands.add_parser(
        "status", parents=[profile_option], help="Show authentication status"
    )
    auth_commands.add_parser(
        "logout", parents=[profile_option], help="Remove stored tokens"
    )

    # profile
    profile = groups.add_parser("profile", help="Manage profiles")
    profile_commands = profile.add_subparsers(dest="command", required=True)

    profile_commands.add_parser("list", help="List profiles")
    profile_commands.add_parser("current", help="Show the active profile")
    switch = profile_commands.add_parser("switch", help="Change the active profile")
    switch.add_argument("name")
    delete = profile_commands.add_parser("delete", help="Delete a non-active profile")
    delete.add_argument("name")

    export = profile_commands.add_parser(
        "export", parents=[profile_option], help="Export a profile bundle"
    )
    export.add_argument("--output", "-o", help="File to write (default: stdout)")

    import_ = profile_commands.add_parser(
        "import", parents=[profile_option], help="Import a profile bundle"
    )
    import_.add_argument("--input", "-i", help="File to read (default: stdin)")
    import_.add_argument(
        "--force", action="store_true", help="Overwrite an existing profile"
    )

    return parser


def _dispatch(args: argparse.Namespace) -> Coroutine[Any, Any, dict[str, Any]]:
    from gmail_cli.commands import (
        auth_login,
        auth_logout,
        auth_status,
        profile_current,
        profile_delete,
        profile_export,
        profile_import,
        profile_list,
        profile_switch,
    )

    match (args.group, args.command):
        case ("auth", "login"):
            return auth_login(args.client_id, args.client_secret, profile=args.profile)
        case ("auth", "status"):
            return auth_status(args.profile)
        case ("auth", "logout"):
            return auth_logout(args.profile)
        case ("profile", "list"):
            return profile_list()
        case ("profile", "current"):
            return profile_current()
        case ("profile", "switch"):
            return profile_switch(args.name)
        case ("profile", "delete"):
            return profile_delete(args.name)
        case ("profile", "export"):
            return profile_export(args.profile, output=args.output)
        case ("profile", "import"):
            return profile_import(args.input, profile=args.profile, force=args.force)
        case _:
            raise ValueError(f"Unknown command: {args.group} {args.command}")


def _print_json(payload: Any, compact: bool) -> None:
    if compact:
        print(json.dumps(payload, separators=(",", ":"), default=str))
    else:
        print(json.dumps(payload, indent=2, default=str))


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point.

    Loads environment, parses arguments, runs one command and prints its
    response as JSON on stdout. Exits with status 1 if the command failed.
    """
    # Load .env file if present
    load_dotenv()

    # Configure logging first
    configure_logging()
    logger = logging.getLogger(__name__)

    args = build_parser().parse_args(argv)

    try:
        response = asyncio.run(_dispatch(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        response = {"status": "error", "error": "Interrupted", "error_code": "Interrupted"}

    # A bundle exported to stdout is printed bare so it can be piped into import
    exported_to_stdout = (
        (args.group, args.command) == ("profile", "export")
        and args.output in (None, "-")
        and response.get("status") == "success"
    )
    _print_json(response["data"] if exported_to_stdout else response, args.compact)

    if response.get("status") == "error":
        sys.exit(1)


if __name__ == "__main__":
    main()
