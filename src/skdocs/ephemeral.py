"""
Ephemeral key store — one persisted ECDH pair per user.

The pair is generated exactly once. Every later wrap and unwrap loads
the same pair from disk (then from the in-process cache), because ECDH
only works when both sides can re-derive the same secret months later.

Storage layout:
    ~/.skdocs/identity/
    └── <user_id>/
        └── ephemeral.json     # EphemeralKeyRecord, mode 0600

The private half is stored raw (base64url) by default, or sealed with
Fernet under a scrypt-derived key when a passphrase is supplied.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

from .errors import AuthenticationFailed, KeyDecodeFailed
from .keys import EphemeralKeyPair, b64decode, b64encode
from .store.base import safe_id

if TYPE_CHECKING:
    from .store import DocumentStore

logger = logging.getLogger("skdocs.ephemeral")


class EphemeralKeyRecord(BaseModel):
    """On-disk form of a user's ephemeral pair."""

    user_id: str
    algorithm: str = "X25519"
    public: str
    private: str = Field(description="base64url raw private key, or a Fernet token if encrypted")
    encrypted: bool = False
    salt: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def _passphrase_key(passphrase: str, salt: bytes) -> bytes:
    """Stretch a passphrase into a Fernet key with scrypt."""
    from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

    kdf = Scrypt(salt=salt, length=32, n=2**15, r=8, p=1)
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))


def _seal_private(raw: bytes, passphrase: str) -> tuple[str, str]:
    from cryptography.fernet import Fernet

    salt = secrets.token_bytes(16)
    token = Fernet(_passphrase_key(passphrase, salt)).encrypt(raw)
    return token.decode("ascii"), b64encode(salt)


def _open_private(token: str, salt: str, passphrase: str) -> bytes:
    from cryptography.fernet import Fernet, InvalidToken

    try:
        return Fernet(_passphrase_key(passphrase, b64decode(salt))).decrypt(token.encode("ascii"))
    except (InvalidToken, ValueError) as exc:
        raise AuthenticationFailed("ephemeral private key did not open") from exc


class EphemeralKeyStore:
    """Persistent, cached store of ephemeral ECDH pairs.

    Args:
        home: SKDocs home directory (~/.skdocs).
        passphrase: Optional passphrase sealing private halves at rest.
    """

    def __init__(self, home: Path, passphrase: Optional[str] = None) -> None:
        self._home = Path(home).expanduser()
        self._identity_dir = self._home / "identity"
        self._passphrase = passphrase
        self._cache: dict[str, EphemeralKeyPair] = {}

    def key_file(self, user_id: str) -> Path:
        """Path of a user's key record.

        Raises:
            ValueError: If ``user_id`` could escape the identity directory.
        """
        return self._identity_dir / safe_id(user_id) / "ephemeral.json"

    def exists(self, user_id: str) -> bool:
        if user_id in self._cache:
            return True
        try:
            return self.key_file(user_id).exists()
        except ValueError:
            return False

    def load_or_create(self, user_id: str) -> EphemeralKeyPair:
        """Return the user's pair, generating and persisting it on first use."""
        cached = self._cache.get(user_id)
        if cached is not None:
            return cached

        pair = self.load(user_id)
        if pair is None:
            pair = EphemeralKeyPair.generate()
            self._save(user_id, pair)
            logger.info("Generated ephemeral key pair for %s", user_id)

        self._cache[user_id] = pair
        return pair

    def load(self, user_id: str) -> Optional[EphemeralKeyPair]:
        """Load a persisted pair, or None if the user has none yet.

        Raises:
            AuthenticationFailed: If the stored private half cannot be opened.
            KeyDecodeFailed: If the record is corrupt.
        """
        cached = self._cache.get(user_id)
        if cached is not None:
            return cached

        path = self.key_file(user_id)
        if not path.exists():
            return None

        try:
            record = EphemeralKeyRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise KeyDecodeFailed(f"ephemeral key record for {user_id} is corrupt") from exc

        if record.encrypted:
            if not self._passphrase or not record.salt:
                raise AuthenticationFailed(f"ephemeral key for {user_id} needs a passphrase")
            raw = _open_private(record.private, record.salt, self._passphrase)
        else:
            try:
                raw = b64decode(record.private)
            except ValueError as exc:
                raise KeyDecodeFailed(f"ephemeral key record for {user_id} is corrupt") from exc

        pair = EphemeralKeyPair.from_private_bytes(raw)
        if pair.public != record.public:
            raise KeyDecodeFailed(f"ephemeral key record for {user_id} does not match its public half")

        self._cache[user_id] = pair
        return pair

    async def publish(self, user_id: str, store: "DocumentStore") -> str:
        """Publish the user's public half to the key directory.

        Returns:
            The published encoded public key.
        """
        pair = self.load_or_create(user_id)
        ack = await store.publish_ephemeral_public_key(user_id, pair.public)
        ack.raise_for_error()
        logger.info("Published ephemeral public key for %s", user_id)
        return pair.public

    def forget(self, user_id: str) -> None:
        """Drop a cached pair (the file on disk is untouched)."""
        self._cache.pop(user_id, None)

    def _save(self, user_id: str, pair: EphemeralKeyPair) -> None:
        raw = pair.private_bytes()
        if self._passphrase:
            private, salt = _seal_private(raw, self._passphrase)
            record = EphemeralKeyRecord(
                user_id=user_id, public=pair.public, private=private, encrypted=True, salt=salt,
            )
        else:
            record = EphemeralKeyRecord(user_id=user_id, public=pair.public, private=b64encode(raw))

        path = self.key_file(user_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps(record.model_dump(mode="json"), indent=2))
