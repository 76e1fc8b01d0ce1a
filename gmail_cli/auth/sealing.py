"""Optional at-rest sealing of credential files.

When ``TOKEN_ENCRYPTION_KEY`` is set, the file backend seals each profile
record with AES-256-GCM before writing it. The sealed form is a small JSON
envelope of hex strings::

    {"iv": "<24 hex chars>", "ciphertext": "<hex>"}

Security considerations:
- The key must be a 64-character hex string (256 bits)
- Every seal draws a fresh 96-bit IV; an IV is never reused with a key
- GCM authenticates the ciphertext, so tampering fails on open
"""

from __future__ import annotations

import json
import logging
import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from gmail_cli.utils.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

KEY_SIZE_BYTES = 32
IV_SIZE_BYTES = 12
HEX_KEY_LENGTH = KEY_SIZE_BYTES * 2

ENVELOPE_FIELDS = frozenset({"iv", "ciphertext"})


def key_from_hex(hex_key: str) -> bytes:
    """Convert a 64-character hex string to a 32-byte key.

    Raises:
        ValidationError: If the string has the wrong length or is not hex.
    """
    hex_key = hex_key.strip()

    if len(hex_key) != HEX_KEY_LENGTH:
        raise ValidationError(
            f"Invalid hex key length: expected {HEX_KEY_LENGTH} characters, "
            f"got {len(hex_key)}",
            field="TOKEN_ENCRYPTION_KEY",
        )

    try:
        return bytes.fromhex(hex_key)
    except ValueError as e:
        raise ValidationError(
            "Invalid hex key: contains non-hexadecimal characters",
            field="TOKEN_ENCRYPTION_KEY",
        ) from e


def get_encryption_key() -> bytes | None:
    """Read the sealing key from ``TOKEN_ENCRYPTION_KEY``.

    Returns:
        The 32-byte key, or None when sealing is not configured.

    Raises:
        ValidationError: If the variable is set but malformed.
    """
    hex_key = os.getenv("TOKEN_ENCRYPTION_KEY")
    if not hex_key:
        return None
    return key_from_hex(hex_key)


def is_sealed(document: object) -> bool:
    """True if a parsed file document is a sealed envelope."""
    return isinstance(document, dict) and set(document) == ENVELOPE_FIELDS


def seal_record(record: dict[str, object], key: bytes) -> dict[str, str]:
    """Encrypt a credential record into an envelope.

    Args:
        record: JSON-serializable profile record.
        key: 32-byte AES key.

    Returns:
        Envelope with hex-encoded ``iv`` and ``ciphertext``.
    """
    if len(key) != KEY_SIZE_BYTES:
        raise ValidationError(
            f"Invalid key length: expected {KEY_SIZE_BYTES} bytes, got {len(key)}",
            field="key",
        )

    iv = os.urandom(IV_SIZE_BYTES)
    plaintext = json.dumps(record).encode("utf-8")
    ciphertext = AESGCM(key).encrypt(iv, plaintext, None)
    return {"iv": iv.hex(), "ciphertext": ciphertext.hex()}


def open_record(envelope: dict[str, str], key: bytes) -> dict[str, object]:
    """Decrypt and parse an envelope produced by :func:`seal_record`.

    Raises:
        StorageError: If the envelope is malformed, the key is wrong, or
            the ciphertext was tampered with.
    """
    try:
        iv = bytes.fromhex(envelope["iv"])
        ciphertext = bytes.fromhex(envelope["ciphertext"])
    except (KeyError, TypeError, ValueError) as e:
        raise StorageError(
            "Invalid sealed record format",
            details={"error_type": type(e).__name__},
        ) from e

    if len(iv) != IV_SIZE_BYTES:
        raise StorageError(
            f"Invalid IV length: expected {IV_SIZE_BYTES} bytes, got {len(iv)}"
        )

    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext, None)
    except Exception as e:
        raise StorageError(
            "Failed to open sealed record - invalid key or corrupted ciphertext",
            details={"error_type": type(e).__name__},
        ) from e

    try:
        record = json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise StorageError("Sealed record does not contain valid JSON") from e

    if not isinstance(record, dict):
        raise StorageError("Sealed record is not a JSON object")
    return record


__all__ = [
    "get_encryption_key",
    "key_from_hex",
    "is_sealed",
    "seal_record",
    "open_record",
]
