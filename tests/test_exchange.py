"""Tests for ECDH key wrapping."""

from __future__ import annotations

import pytest

from skdocs.errors import AuthenticationFailed, KeyDecodeFailed
from skdocs.exchange import _derive_key, derive_shared_secret, unwrap, wrap_for_recipient
from skdocs.keys import EphemeralKeyPair, b64decode, b64encode, generate_document_key


@pytest.fixture
def sender() -> EphemeralKeyPair:
    return EphemeralKeyPair.generate()


@pytest.fixture
def recipient() -> EphemeralKeyPair:
    return EphemeralKeyPair.generate()


class TestDerivation:
    """Shared secret derivation."""

    def test_derive_key_deterministic(self) -> None:
        assert _derive_key(b"material", b"info") == _derive_key(b"material", b"info")

    def test_derive_key_context_separation(self) -> None:
        assert _derive_key(b"material", b"a") != _derive_key(b"material", b"b")

    def test_secret_symmetric(self, sender: EphemeralKeyPair, recipient: EphemeralKeyPair) -> None:
        a = derive_shared_secret(sender, recipient.public)
        b = derive_shared_secret(recipient, sender.public)
        assert a == b
        assert len(a) == 32

    def test_secret_differs_per_peer(self, sender: EphemeralKeyPair, recipient: EphemeralKeyPair) -> None:
        other = EphemeralKeyPair.generate()
        assert derive_shared_secret(sender, recipient.public) != derive_shared_secret(
            sender, other.public
        )

    def test_low_order_point_rejected(self, sender: EphemeralKeyPair) -> None:
        with pytest.raises(KeyDecodeFailed):
            derive_shared_secret(sender, b64encode(b"\x00" * 32))

    def test_malformed_public_rejected(self, sender: EphemeralKeyPair) -> None:
        with pytest.raises(KeyDecodeFailed):
            derive_shared_secret(sender, "not-a-key")


class TestWrapping:
    """Wrapping a document key for one recipient."""

    def test_recipient_unwraps(self, sender: EphemeralKeyPair, recipient: EphemeralKeyPair) -> None:
        doc_key = generate_document_key()
        wrapped = wrap_for_recipient(doc_key, recipient.public, sender)
        assert wrapped.sender_ephemeral_public == sender.public
        assert unwrap(wrapped, recipient) == doc_key

    def test_self_wrap(self, sender: EphemeralKeyPair) -> None:
        doc_key = generate_document_key()
        wrapped = wrap_for_recipient(doc_key, sender.public, sender)
        assert unwrap(wrapped, sender) == doc_key

    def test_wrapped_key_hides_document_key(
        self, sender: EphemeralKeyPair, recipient: EphemeralKeyPair
    ) -> None:
        doc_key = generate_document_key()
        wrapped = wrap_for_recipient(doc_key, recipient.public, sender)
        assert b64encode(doc_key) not in wrapped.model_dump_json()

    def test_wrong_recipient(self, sender: EphemeralKeyPair, recipient: EphemeralKeyPair) -> None:
        wrapped = wrap_for_recipient(generate_document_key(), recipient.public, sender)
        with pytest.raises(AuthenticationFailed):
            unwrap(wrapped, EphemeralKeyPair.generate())

    def test_tampered_wrap(self, sender: EphemeralKeyPair, recipient: EphemeralKeyPair) -> None:
        wrapped = wrap_for_recipient(generate_document_key(), recipient.public, sender)
        raw = bytearray(b64decode(wrapped.ciphertext))
        raw[-1] ^= 0x80
        wrapped.ciphertext = b64encode(bytes(raw))
        with pytest.raises(AuthenticationFailed):
            unwrap(wrapped, recipient)

    def test_copied_wrap_does_not_open_for_sender(
        self, sender: EphemeralKeyPair, recipient: EphemeralKeyPair
    ) -> None:
        """A wrap made for the recipient is bound to the recipient's public key."""
        wrapped = wrap_for_recipient(generate_document_key(), recipient.public, sender)
        with pytest.raises(AuthenticationFailed):
            unwrap(wrapped, sender)
