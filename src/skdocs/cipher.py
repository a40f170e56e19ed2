"""
Symmetric cipher — the only door document bytes pass through at rest.

AES-256-GCM with a fresh 96-bit nonce per call. The 128-bit tag is split
out of the ciphertext so the stored record names every part explicitly.
Decryption either returns the exact plaintext or raises; there is no
partial output.
"""

from __future__ import annotations

import os
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import AuthenticationFailed
from .keys import DOCUMENT_KEY_BYTES, b64decode, b64encode
from .models import EncryptedPayload

NONCE_BYTES = 12
TAG_BYTES = 16


def _as_bytes(data: Union[str, bytes]) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else data


def encrypt(
    plaintext: Union[str, bytes],
    key: bytes,
    associated_data: Optional[bytes] = None,
) -> EncryptedPayload:
    """Encrypt plaintext under a document key.

    Args:
        plaintext: Text (UTF-8 encoded) or raw bytes.
        key: 32-byte AES key.
        associated_data: Optional bytes bound to the ciphertext but not encrypted.

    Returns:
        EncryptedPayload with base64url ciphertext, nonce, and tag.
    """
    if len(key) != DOCUMENT_KEY_BYTES:
        raise ValueError(f"AES-256-GCM needs a {DOCUMENT_KEY_BYTES}-byte key")
    nonce = os.urandom(NONCE_BYTES)
    sealed = AESGCM(key).encrypt(nonce, _as_bytes(plaintext), associated_data)
    return EncryptedPayload(
        ciphertext=b64encode(sealed[:-TAG_BYTES]),
        nonce=b64encode(nonce),
        auth_tag=b64encode(sealed[-TAG_BYTES:]),
    )


def decrypt(
    payload: EncryptedPayload,
    key: bytes,
    associated_data: Optional[bytes] = None,
) -> bytes:
    """Decrypt and authenticate a payload.

    Raises:
        AuthenticationFailed: On any tag mismatch, wrong key, or malformed field.
    """
    try:
        ciphertext = b64decode(payload.ciphertext)
        nonce = b64decode(payload.nonce)
        tag = b64decode(payload.auth_tag)
    except ValueError as exc:
        raise AuthenticationFailed("payload fields are not valid base64url") from exc

    if len(nonce) != NONCE_BYTES or len(tag) != TAG_BYTES or len(key) != DOCUMENT_KEY_BYTES:
        raise AuthenticationFailed("payload has the wrong shape")

    try:
        return AESGCM(key).decrypt(nonce, ciphertext + tag, associated_data)
    except InvalidTag as exc:
        raise AuthenticationFailed() from exc


def decrypt_text(
    payload: EncryptedPayload,
    key: bytes,
    associated_data: Optional[bytes] = None,
) -> str:
    """Decrypt a payload that is known to hold UTF-8 text."""
    raw = decrypt(payload, key, associated_data)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise AuthenticationFailed("payload is not UTF-8 text") from exc
