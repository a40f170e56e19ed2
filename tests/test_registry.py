"""Tests for the key distribution registry."""

from __future__ import annotations

import pytest

from skdocs.cipher import encrypt
from skdocs.errors import PermissionDenied, RecipientKeyUnavailable
from skdocs.exchange import wrap_for_recipient
from skdocs.keys import generate_document_key
from skdocs.models import AccessLevel, Actor, Document, SharingInfo
from skdocs.registry import KeyDistributionRegistry
from skdocs.store import MemoryStore


@pytest.fixture
def registry(store: MemoryStore) -> KeyDistributionRegistry:
    return KeyDistributionRegistry(store)


@pytest.fixture
def doc_key() -> bytes:
    return generate_document_key()


@pytest.fixture
def doc(owner: Actor, doc_key: bytes, registry: KeyDistributionRegistry) -> Document:
    document = Document(
        id="doc1",
        payload=encrypt("body", doc_key),
        sharing=SharingInfo(owner=owner.user_id),
    )
    registry.grant_owner(document, wrap_for_recipient(doc_key, owner.key_pair.public, owner.key_pair))
    return document


class TestLookup:
    """Recipient key directory lookups."""

    @pytest.mark.asyncio
    async def test_published_key(self, registry: KeyDistributionRegistry, collaborator: Actor) -> None:
        assert await registry.recipient_public_key("carol") == collaborator.key_pair.public

    @pytest.mark.asyncio
    async def test_unpublished_key_is_retryable(self, registry: KeyDistributionRegistry) -> None:
        with pytest.raises(RecipientKeyUnavailable) as exc_info:
            await registry.recipient_public_key("nobody")
        assert exc_info.value.retryable is True


class TestGrantRevoke:
    """Access lists and wrapped keys move together."""

    @pytest.mark.asyncio
    async def test_grant_read(
        self,
        registry: KeyDistributionRegistry,
        doc: Document,
        doc_key: bytes,
        owner: Actor,
        collaborator: Actor,
    ) -> None:
        wrapped = await registry.wrap_for(doc_key, "carol", owner.key_pair)
        registry.grant(doc, "carol", AccessLevel.READ, wrapped)

        assert "carol" in doc.sharing.read_access
        assert registry.has_access(doc, "carol")
        assert not registry.can_write(doc, "carol")
        assert registry.unwrap_for(doc, "carol", collaborator.key_pair) == doc_key

    @pytest.mark.asyncio
    async def test_regrant_moves_between_lists(
        self, registry: KeyDistributionRegistry, doc: Document, doc_key: bytes, owner: Actor,
        collaborator: Actor,
    ) -> None:
        wrapped = await registry.wrap_for(doc_key, "carol", owner.key_pair)
        registry.grant(doc, "carol", AccessLevel.READ, wrapped)
        registry.grant(doc, "carol", AccessLevel.WRITE, wrapped)

        assert "carol" in doc.sharing.write_access
        assert "carol" not in doc.sharing.read_access
        assert registry.can_write(doc, "carol")

    @pytest.mark.asyncio
    async def test_revoke_removes_list_and_key(
        self, registry: KeyDistributionRegistry, doc: Document, doc_key: bytes, owner: Actor,
        collaborator: Actor,
    ) -> None:
        wrapped = await registry.wrap_for(doc_key, "carol", owner.key_pair)
        registry.grant(doc, "carol", AccessLevel.WRITE, wrapped)

        assert registry.revoke(doc, "carol") is True
        assert "carol" not in doc.sharing.write_access
        assert "carol" not in doc.sharing.document_keys
        assert not registry.has_access(doc, "carol")

    def test_revoke_unknown_user(self, registry: KeyDistributionRegistry, doc: Document) -> None:
        assert registry.revoke(doc, "nobody") is False

    def test_owner_has_access(self, registry: KeyDistributionRegistry, doc: Document, owner: Actor, doc_key: bytes) -> None:
        assert registry.has_access(doc, "alice")
        assert registry.can_write(doc, "alice")
        assert registry.unwrap_for(doc, "alice", owner.key_pair) == doc_key

    def test_listed_without_key_has_no_access(self, registry: KeyDistributionRegistry, doc: Document) -> None:
        doc.sharing.read_access.add("carol")
        assert not registry.has_access(doc, "carol")
        assert registry.missing_keys(doc) == {"carol"}

    def test_key_without_listing_has_no_access(
        self, registry: KeyDistributionRegistry, doc: Document, doc_key: bytes, owner: Actor,
        collaborator: Actor,
    ) -> None:
        doc.sharing.document_keys["carol"] = wrap_for_recipient(
            doc_key, collaborator.key_pair.public, owner.key_pair,
        )
        assert not registry.has_access(doc, "carol")

    def test_unwrap_denied(self, registry: KeyDistributionRegistry, doc: Document, outsider: Actor) -> None:
        with pytest.raises(PermissionDenied):
            registry.unwrap_for(doc, "mallory", outsider.key_pair)

    def test_no_missing_keys_after_owner_grant(self, registry: KeyDistributionRegistry, doc: Document) -> None:
        assert registry.missing_keys(doc) == set()
