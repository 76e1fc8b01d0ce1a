"""Authenticated API client access.

The only surface downstream API wrappers use:

    >>> from gmail_cli.api import client_factory
    >>> session = client_factory.for_profile("work")
    >>> gmail = client_factory.service("gmail", "v1", profile="work")
"""

from gmail_cli.api.client import AuthenticatedClientFactory, RotatingCredentials, client_factory

__all__ = [
    "AuthenticatedClientFactory",
    "RotatingCredentials",
    "client_factory",
]
