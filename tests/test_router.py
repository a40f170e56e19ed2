"""Tests for the conflict resolution router."""

from __future__ import annotations

import pytest

from skdocs.errors import PermissionDenied
from skdocs.models import AccessLevel, Actor
from skdocs.router import ConflictResolutionRouter, WriteRoute
from skdocs.service import DocumentService
from skdocs.store import MemoryStore


class TestRouteChoice:
    """Route selection by sharing state."""

    @pytest.mark.asyncio
    async def test_solo_owner_is_lww(self, service: DocumentService, store: MemoryStore, owner: Actor) -> None:
        doc_id, _ = await service.create_document("x", owner)
        doc = await store.get_document(doc_id)
        assert ConflictResolutionRouter.route(doc, "alice") == WriteRoute.LAST_WRITE_WINS

    @pytest.mark.asyncio
    async def test_shared_owner_branches(
        self, service: DocumentService, store: MemoryStore, owner: Actor, collaborator: Actor,
    ) -> None:
        doc_id, _ = await service.create_document("x", owner)
        await service.share_with(doc_id, "carol", AccessLevel.READ, owner)
        doc = await store.get_document(doc_id)
        assert ConflictResolutionRouter.route(doc, "alice") == WriteRoute.BRANCH
        assert ConflictResolutionRouter.route(doc, "carol") == WriteRoute.BRANCH

    @pytest.mark.asyncio
    async def test_public_owner_branches(self, service: DocumentService, store: MemoryStore, owner: Actor) -> None:
        doc_id, _ = await service.create_document("x", owner)
        await service.make_public(doc_id, owner)
        doc = await store.get_document(doc_id)
        assert ConflictResolutionRouter.route(doc, "alice") == WriteRoute.BRANCH


class TestCommit:
    """Executing an edit along its route."""

    @pytest.mark.asyncio
    async def test_solo_write_no_branch(
        self, service: DocumentService, store: MemoryStore, owner: Actor,
    ) -> None:
        doc_id, _ = await service.create_document("draft", owner)

        result = await service.write_document(doc_id, "final", owner)

        assert result.route == WriteRoute.LAST_WRITE_WINS
        assert result.branch_id is None
        assert result.version == 2
        doc = await store.get_document(doc_id)
        assert doc.branches == []
        assert doc.metadata.last_modified_by == "alice"
        assert store.branches == {}
        assert await service.open_document(doc_id, owner) == "final"

    @pytest.mark.asyncio
    async def test_shared_write_creates_branch(
        self, service: DocumentService, store: MemoryStore, owner: Actor, collaborator: Actor,
    ) -> None:
        doc_id, _ = await service.create_document("draft", owner)
        await service.share_with(doc_id, "carol", AccessLevel.WRITE, owner)

        result = await service.write_document(doc_id, "carol edit", collaborator)

        assert result.route == WriteRoute.BRANCH
        assert result.branch_id is not None
        assert result.version == 1
        assert await service.open_document(doc_id, owner) == "draft"
        assert await service.read_branch(doc_id, result.branch_id, owner) == "carol edit"

    @pytest.mark.asyncio
    async def test_owner_write_on_shared_doc_branches(
        self, service: DocumentService, owner: Actor, collaborator: Actor,
    ) -> None:
        doc_id, _ = await service.create_document("draft", owner)
        await service.share_with(doc_id, "carol", AccessLevel.READ, owner)

        result = await service.write_document(doc_id, "owner edit", owner)

        assert result.route == WriteRoute.BRANCH
        assert result.branch_id.startswith("alice~")

    @pytest.mark.asyncio
    async def test_non_owner_on_solo_doc_denied(
        self, service: DocumentService, store: MemoryStore, owner: Actor, outsider: Actor,
    ) -> None:
        doc_id, key = await service.create_document("draft", owner)
        doc = await store.get_document(doc_id)
        with pytest.raises(PermissionDenied):
            await service.router.commit(doc, "sneaky", key, "mallory")
        assert store.branches == {}
