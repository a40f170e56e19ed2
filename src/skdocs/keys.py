"""
Document keys and ephemeral key pairs.

Key hierarchy:
    User ephemeral pair (X25519, ECDH only, never used for signing)
    └── Wrapped document key (one per collaborator, see exchange.py)
        └── Document key (AES-256-GCM, one per document for its whole life)

Keys travel as unpadded base64url strings so they fit in a share-link
fragment or a JSON record without escaping.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)

from .errors import KeyDecodeFailed, KeyGenerationFailed

logger = logging.getLogger("skdocs.keys")

DOCUMENT_KEY_BYTES = 32
EPHEMERAL_KEY_BYTES = 32


# ---------------------------------------------------------------------------
# base64url helpers
# ---------------------------------------------------------------------------

def b64encode(data: bytes) -> str:
    """Unpadded base64url encoding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64decode(text: str) -> bytes:
    """Decode base64url, with or without padding.

    Raises:
        ValueError: If the text is not valid base64url.
    """
    if not isinstance(text, str):
        raise ValueError("expected a string")
    padded = text + "=" * (-len(text) % 4)
    try:
        return base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError("invalid base64url") from exc


# ---------------------------------------------------------------------------
# Document keys
# ---------------------------------------------------------------------------

def generate_document_key() -> bytes:
    """Produce a fresh 256-bit document key from the OS CSPRNG.

    Raises:
        KeyGenerationFailed: If the random source is unavailable.
    """
    try:
        key = secrets.token_bytes(DOCUMENT_KEY_BYTES)
    except (OSError, NotImplementedError) as exc:
        logger.error("Document key generation failed: %s", type(exc).__name__)
        raise KeyGenerationFailed() from exc
    if len(key) != DOCUMENT_KEY_BYTES:
        raise KeyGenerationFailed()
    return key


def encode_key(key: bytes) -> str:
    """Encode a raw key for transport."""
    return b64encode(key)


def decode_key(encoded: str, length: int = DOCUMENT_KEY_BYTES) -> bytes:
    """Decode a transported key back to raw bytes.

    Raises:
        KeyDecodeFailed: On malformed input or the wrong key length.
    """
    try:
        raw = b64decode(encoded.strip())
    except (ValueError, AttributeError) as exc:
        raise KeyDecodeFailed("key is not valid base64url") from exc
    if len(raw) != length:
        raise KeyDecodeFailed(f"expected {length}-byte key, got {len(raw)} bytes")
    return raw


def try_decode_key(encoded: Optional[str]) -> Optional[bytes]:
    """Like decode_key, but treat anything undecodable as "no key"."""
    if not encoded:
        return None
    try:
        return decode_key(encoded)
    except KeyDecodeFailed:
        logger.debug("Ignoring undecodable document key")
        return None


# ---------------------------------------------------------------------------
# Ephemeral (ECDH) key pairs
# ---------------------------------------------------------------------------

class EphemeralKeyPair:
    """An X25519 pair used only for deriving shared secrets.

    Args:
        private_key: The X25519 private half.
    """

    def __init__(self, private_key: X25519PrivateKey) -> None:
        self._private = private_key
        self._public_raw = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @classmethod
    def generate(cls) -> "EphemeralKeyPair":
        return cls(X25519PrivateKey.generate())

    @classmethod
    def from_private_bytes(cls, raw: bytes) -> "EphemeralKeyPair":
        return cls(X25519PrivateKey.from_private_bytes(raw))

    @property
    def public(self) -> str:
        """Encoded public half, safe to publish."""
        return b64encode(self._public_raw)

    @property
    def private_key(self) -> X25519PrivateKey:
        return self._private

    def private_bytes(self) -> bytes:
        return self._private.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def __repr__(self) -> str:
        return f"EphemeralKeyPair(public={self.public!r})"


def load_public_key(encoded: str) -> X25519PublicKey:
    """Parse a published ephemeral public key.

    Raises:
        KeyDecodeFailed: If the string is not a valid X25519 public key.
    """
    raw = decode_key(encoded, length=EPHEMERAL_KEY_BYTES)
    return X25519PublicKey.from_public_bytes(raw)
