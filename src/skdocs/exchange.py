"""
ECDH key exchange — wrapping a document key for one recipient.

    sender_private x recipient_public == recipient_private x sender_public
        └── HKDF-SHA256("skdocs:ecdh:wrap") -> 32-byte wrapping key
            └── AES-256-GCM(encoded document key)

The sender's ephemeral public half travels inside the WrappedKey so the
recipient can re-derive the same secret later. Both parties' public
halves are bound as associated data, so a wrapped key copied onto a
different collaborator's entry will not open.

Ephemeral pairs must be the persisted ones from EphemeralKeyStore.
A pair regenerated per call derives a secret nobody can reproduce.
"""

from __future__ import annotations

import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import AuthenticationFailed, KeyDecodeFailed
from .keys import (
    EphemeralKeyPair,
    b64decode,
    b64encode,
    decode_key,
    encode_key,
    load_public_key,
)
from .models import WrappedKey

logger = logging.getLogger("skdocs.exchange")

WRAP_INFO = b"skdocs:ecdh:wrap"
NONCE_BYTES = 12


def _derive_key(material: bytes, info: bytes, length: int = 32) -> bytes:
    """Derive a key using HKDF-SHA256.

    Args:
        material: Input keying material (the raw ECDH output).
        info: Context string separating this use from any other.
        length: Desired output key length in bytes.

    Returns:
        Derived key bytes.
    """
    from cryptography.hazmat.primitives.hashes import SHA256
    from cryptography.hazmat.primitives.kdf.hkdf import HKDF

    hkdf = HKDF(
        algorithm=SHA256(),
        length=length,
        salt=None,
        info=info,
    )
    return hkdf.derive(material)


def derive_shared_secret(my_pair: EphemeralKeyPair, their_public: str) -> bytes:
    """Derive the symmetric wrapping key shared with another party.

    Args:
        my_pair: Our persisted ephemeral pair.
        their_public: The other party's encoded ephemeral public key.

    Returns:
        32-byte wrapping key. Identical from either side of the exchange.

    Raises:
        KeyDecodeFailed: If ``their_public`` is not a usable X25519 key.
    """
    peer = load_public_key(their_public)
    try:
        raw = my_pair.private_key.exchange(peer)
    except ValueError as exc:
        # Reason: low-order points yield an all-zero secret
        raise KeyDecodeFailed("peer public key is not usable for ECDH") from exc
    return _derive_key(raw, WRAP_INFO)


def _binding(sender_public: str, recipient_public: str) -> bytes:
    return f"skdocs:wrap:{sender_public}:{recipient_public}".encode("ascii")


def wrap_for_recipient(
    doc_key: bytes,
    recipient_public: str,
    sender_pair: EphemeralKeyPair,
) -> WrappedKey:
    """Seal a document key so only the recipient can open it.

    Args:
        doc_key: Raw 32-byte document key.
        recipient_public: Recipient's published ephemeral public key.
        sender_pair: Sender's persisted ephemeral pair.

    Returns:
        WrappedKey carrying the sender's public half.
    """
    secret = derive_shared_secret(sender_pair, recipient_public)
    nonce = os.urandom(NONCE_BYTES)
    sealed = AESGCM(secret).encrypt(
        nonce,
        encode_key(doc_key).encode("ascii"),
        _binding(sender_pair.public, recipient_public),
    )
    return WrappedKey(
        ciphertext=b64encode(sealed),
        nonce=b64encode(nonce),
        sender_ephemeral_public=sender_pair.public,
    )


def unwrap(wrapped: WrappedKey, my_pair: EphemeralKeyPair) -> bytes:
    """Recover a document key from a WrappedKey addressed to us.

    Raises:
        AuthenticationFailed: If the wrap was not made for this pair or was altered.
        KeyDecodeFailed: If the sender key or the recovered key is malformed.
    """
    secret = derive_shared_secret(my_pair, wrapped.sender_ephemeral_public)
    try:
        sealed = b64decode(wrapped.ciphertext)
        nonce = b64decode(wrapped.nonce)
    except ValueError as exc:
        raise AuthenticationFailed("wrapped key fields are not valid base64url") from exc
    if len(nonce) != NONCE_BYTES:
        raise AuthenticationFailed("wrapped key has the wrong shape")

    try:
        encoded = AESGCM(secret).decrypt(
            nonce,
            sealed,
            _binding(wrapped.sender_ephemeral_public, my_pair.public),
        )
    except InvalidTag as exc:
        logger.debug("Unwrap failed authentication")
        raise AuthenticationFailed("wrapped key did not authenticate") from exc

    return decode_key(encoded.decode("ascii", errors="replace"))
