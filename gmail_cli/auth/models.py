"""Pydantic models for profile-scoped credentials.

These are the values that flow between the secret store, the credential
manager, the login flow and the client factory. The secret store itself
only sees opaque strings; serialization happens here.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

EXPORT_BUNDLE_VERSION = 1


class Tokens(BaseModel):
    """OAuth tokens for one profile.

    Attributes:
        access_token: Short-lived bearer token.
        refresh_token: Long-lived refresh token. Issued once by the provider
            and preserved across rotations (see :func:`merge_tokens`).
        expiry_date: Access token expiry in epoch milliseconds.
    """

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    expiry_date: int | None = None

    def to_json(self) -> str:
        """Serialize for storage, omitting absent fields."""
        return self.model_dump_json(exclude_none=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def expiry_datetime(self) -> datetime | None:
        """Expiry as a naive UTC datetime, the form google-auth compares against."""
        if self.expiry_date is None:
            return None
        return datetime.fromtimestamp(self.expiry_date / 1000, tz=UTC).replace(tzinfo=None)

    @classmethod
    def from_credentials(cls, credentials: Any) -> Tokens:
        """Build from a ``google.oauth2.credentials.Credentials`` instance."""
        expiry_date = None
        if credentials.expiry is not None:
            expiry_date = expiry_to_millis(credentials.expiry)
        return cls(
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            expiry_date=expiry_date,
        )

    @classmethod
    def from_token_response(cls, response: dict[str, Any]) -> Tokens:
        """Build from a token endpoint response.

        ``expires_at`` (epoch seconds, as added by requests-oauthlib) wins
        over ``expires_in`` when both are present.
        """
        expiry_date = None
        if response.get("expires_at") is not None:
            expiry_date = int(float(response["expires_at"]) * 1000)
        elif response.get("expires_in") is not None:
            expiry_date = int(
                (datetime.now(UTC).timestamp() + float(response["expires_in"])) * 1000
            )
        return cls(
            access_token=response["access_token"],
            refresh_token=response.get("refresh_token") or None,
            expiry_date=expiry_date,
        )


class ClientCredentials(BaseModel):
    """OAuth2 application identity for one profile."""

    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(..., min_length=1)


class ExportBundle(BaseModel):
    """Portable, versioned snapshot of one profile's credential state.

    Serialized with camelCase keys::

        {"version": 1, "profile": "work", "email": "a@x.com",
         "clientId": "...", "clientSecret": "...", "tokens": {...}}
    """

    model_config = ConfigDict(populate_by_name=True)

    version: int = EXPORT_BUNDLE_VERSION
    profile: str
    email: str | None = None
    client_id: str = Field(..., alias="clientId", min_length=1)
    client_secret: str = Field(..., alias="clientSecret", min_length=1)
    tokens: Tokens

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def expiry_to_millis(expiry: datetime) -> int:
    """Convert a google-auth expiry (naive UTC) to epoch milliseconds."""
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=UTC)
    return int(expiry.timestamp() * 1000)


def merge_tokens(previous: Tokens | None, rotated: Tokens) -> Tokens:
    """Merge a rotation result with the previously persisted tokens.

    The rotated access token always wins. A refresh token or expiry absent
    from the rotation is carried over from ``previous``; a present value is
    never replaced by an absent one.

    Example:
        >>> old = Tokens(access_token="a1", refresh_token="r1", expiry_date=1)
        >>> merge_tokens(old, Tokens(access_token="a2")).refresh_token
        'r1'
    """
    if previous is None:
        return rotated
    return Tokens(
        access_token=rotated.access_token,
        refresh_token=rotated.refresh_token or previous.refresh_token,
        expiry_date=(
            rotated.expiry_date
            if rotated.expiry_date is not None
            else previous.expiry_date
        ),
    )


__all__ = [
    "EXPORT_BUNDLE_VERSION",
    "Tokens",
    "ClientCredentials",
    "ExportBundle",
    "expiry_to_millis",
    "merge_tokens",
]
