"""Tests for the persisted ephemeral key store."""

from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest

from skdocs.ephemeral import EphemeralKeyRecord, EphemeralKeyStore
from skdocs.errors import AuthenticationFailed, KeyDecodeFailed
from skdocs.exchange import unwrap, wrap_for_recipient
from skdocs.keys import EphemeralKeyPair, generate_document_key
from skdocs.store import MemoryStore


class TestPersistence:
    """A user's pair is generated once and reused forever."""

    def test_created_on_first_use(self, docs_home: Path) -> None:
        keys = EphemeralKeyStore(docs_home)
        assert not keys.exists("alice")
        keys.load_or_create("alice")
        assert keys.exists("alice")
        assert keys.key_file("alice").exists()

    def test_same_pair_every_call(self, docs_home: Path) -> None:
        keys = EphemeralKeyStore(docs_home)
        assert keys.load_or_create("alice") is keys.load_or_create("alice")

    def test_survives_restart(self, docs_home: Path) -> None:
        first = EphemeralKeyStore(docs_home).load_or_create("alice")
        second = EphemeralKeyStore(docs_home).load_or_create("alice")
        assert first.public == second.public

    def test_wrap_made_before_restart_opens_after(self, docs_home: Path) -> None:
        """Persisted pairs keep old wraps openable."""
        owner = EphemeralKeyStore(docs_home).load_or_create("alice")
        doc_key = generate_document_key()
        wrapped = wrap_for_recipient(doc_key, owner.public, owner)

        reloaded = EphemeralKeyStore(docs_home).load_or_create("alice")
        assert unwrap(wrapped, reloaded) == doc_key

    def test_file_mode_0600(self, docs_home: Path) -> None:
        keys = EphemeralKeyStore(docs_home)
        keys.load_or_create("alice")
        mode = stat.S_IMODE(keys.key_file("alice").stat().st_mode)
        assert mode == 0o600

    def test_record_shape(self, docs_home: Path) -> None:
        keys = EphemeralKeyStore(docs_home)
        pair = keys.load_or_create("alice")
        data = json.loads(keys.key_file("alice").read_text(encoding="utf-8"))
        record = EphemeralKeyRecord.model_validate(data)
        assert record.user_id == "alice"
        assert record.algorithm == "X25519"
        assert record.public == pair.public
        assert record.encrypted is False

    def test_load_missing_returns_none(self, docs_home: Path) -> None:
        assert EphemeralKeyStore(docs_home).load("nobody") is None

    def test_corrupt_record(self, docs_home: Path) -> None:
        keys = EphemeralKeyStore(docs_home)
        path = keys.key_file("alice")
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(KeyDecodeFailed):
            keys.load("alice")

    def test_mismatched_public_half(self, docs_home: Path) -> None:
        keys = EphemeralKeyStore(docs_home)
        keys.load_or_create("alice")
        path = keys.key_file("alice")
        data = json.loads(path.read_text(encoding="utf-8"))
        data["public"] = EphemeralKeyPair.generate().public
        path.write_text(json.dumps(data), encoding="utf-8")

        with pytest.raises(KeyDecodeFailed):
            EphemeralKeyStore(docs_home).load("alice")

    def test_forget_drops_cache_only(self, docs_home: Path) -> None:
        keys = EphemeralKeyStore(docs_home)
        pair = keys.load_or_create("alice")
        keys.forget("alice")
        assert keys.exists("alice")
        assert keys.load("alice").public == pair.public

    @pytest.mark.parametrize("user_id", ["../../outside", "..", "a/b", ""])
    def test_unsafe_user_id_refused(self, docs_home: Path, user_id: str) -> None:
        keys = EphemeralKeyStore(docs_home)
        with pytest.raises(ValueError):
            keys.key_file(user_id)
        with pytest.raises(ValueError):
            keys.load_or_create(user_id)
        assert not keys.exists(user_id)
        assert not (docs_home.parent / "outside").exists()
        assert list(docs_home.rglob("ephemeral.json")) == []


class TestPassphrase:
    """Private halves sealed under a passphrase."""

    def test_sealed_on_disk(self, docs_home: Path) -> None:
        keys = EphemeralKeyStore(docs_home, passphrase="correct horse")
        keys.load_or_create("alice")
        data = json.loads(keys.key_file("alice").read_text(encoding="utf-8"))
        assert data["encrypted"] is True
        assert data["salt"]

    def test_reopens_with_passphrase(self, docs_home: Path) -> None:
        pair = EphemeralKeyStore(docs_home, passphrase="correct horse").load_or_create("alice")
        again = EphemeralKeyStore(docs_home, passphrase="correct horse").load("alice")
        assert again.public == pair.public

    def test_wrong_passphrase(self, docs_home: Path) -> None:
        EphemeralKeyStore(docs_home, passphrase="correct horse").load_or_create("alice")
        with pytest.raises(AuthenticationFailed):
            EphemeralKeyStore(docs_home, passphrase="battery staple").load("alice")

    def test_missing_passphrase(self, docs_home: Path) -> None:
        EphemeralKeyStore(docs_home, passphrase="correct horse").load_or_create("alice")
        with pytest.raises(AuthenticationFailed):
            EphemeralKeyStore(docs_home).load("alice")


class TestPublish:
    """Publishing the public half to the directory."""

    @pytest.mark.asyncio
    async def test_publish(self, docs_home: Path) -> None:
        store = MemoryStore()
        keys = EphemeralKeyStore(docs_home)
        public = await keys.publish("alice", store)
        assert await store.lookup_ephemeral_public_key("alice") == public
        assert keys.load("alice").public == public
