"""Tests for the merge coordinator."""

from __future__ import annotations

import pytest

from skdocs.config import DocsConfig, StalenessPolicy
from skdocs.errors import (
    CorruptBranch,
    DocumentNotFound,
    InvalidBranchState,
    PermissionDenied,
)
from skdocs.keys import b64decode, b64encode
from skdocs.models import AccessLevel, Actor, BranchStatus
from skdocs.service import DocumentService
from skdocs.store import MemoryStore


async def _doc_with_branch(service: DocumentService, owner: Actor, collaborator: Actor):
    doc_id, _ = await service.create_document("v1 text", owner)
    await service.share_with(doc_id, "carol", AccessLevel.WRITE, owner)
    branch_id = await service.propose_branch(doc_id, "carol's text", collaborator)
    return doc_id, branch_id


class TestMerge:
    """Owner merges a pending branch."""

    @pytest.mark.asyncio
    async def test_merge_promotes_content(
        self, service: DocumentService, owner: Actor, collaborator: Actor,
    ) -> None:
        doc_id, branch_id = await _doc_with_branch(service, owner, collaborator)

        doc = await service.merge(doc_id, branch_id, owner)

        assert doc.version == 2
        assert doc.metadata.last_modified_by == "carol"
        assert await service.open_document(doc_id, owner) == "carol's text"
        assert await service.open_document(doc_id, collaborator) == "carol's text"

        branch = await service.branches.get(branch_id)
        assert branch.status == BranchStatus.MERGED
        assert branch.merged_by == "alice"

    @pytest.mark.asyncio
    async def test_merge_reencrypts_with_fresh_nonce(
        self, service: DocumentService, store: MemoryStore, owner: Actor, collaborator: Actor,
    ) -> None:
        doc_id, branch_id = await _doc_with_branch(service, owner, collaborator)
        branch = await store.get_branch(branch_id)

        doc = await service.merge(doc_id, branch_id, owner)

        assert doc.payload.nonce != branch.payload.nonce

    @pytest.mark.asyncio
    async def test_merge_twice_rejected(
        self, service: DocumentService, owner: Actor, collaborator: Actor,
    ) -> None:
        doc_id, branch_id = await _doc_with_branch(service, owner, collaborator)
        await service.merge(doc_id, branch_id, owner)
        with pytest.raises(InvalidBranchState):
            await service.merge(doc_id, branch_id, owner)

    @pytest.mark.asyncio
    async def test_non_owner_cannot_merge(
        self, service: DocumentService, store: MemoryStore, owner: Actor, collaborator: Actor,
    ) -> None:
        doc_id, branch_id = await _doc_with_branch(service, owner, collaborator)

        with pytest.raises(PermissionDenied):
            await service.merge(doc_id, branch_id, collaborator)

        assert (await store.get_branch(branch_id)).status == BranchStatus.PENDING
        assert (await store.get_document(doc_id)).version == 1
        assert await service.open_document(doc_id, owner) == "v1 text"

    @pytest.mark.asyncio
    async def test_unknown_branch(self, service: DocumentService, owner: Actor) -> None:
        doc_id, _ = await service.create_document("x", owner)
        with pytest.raises(DocumentNotFound):
            await service.merge(doc_id, "carol~1", owner)

    @pytest.mark.asyncio
    async def test_unknown_document(self, service: DocumentService, owner: Actor) -> None:
        with pytest.raises(DocumentNotFound):
            await service.merge("missing", "carol~1", owner)

    @pytest.mark.asyncio
    async def test_corrupt_branch_leaves_document(
        self, service: DocumentService, store: MemoryStore, owner: Actor, collaborator: Actor,
    ) -> None:
        doc_id, branch_id = await _doc_with_branch(service, owner, collaborator)
        branch = await store.get_branch(branch_id)
        raw = bytearray(b64decode(branch.payload.auth_tag))
        raw[0] ^= 0xFF
        branch.payload.auth_tag = b64encode(bytes(raw))
        await store.put_branch(branch)

        with pytest.raises(CorruptBranch) as exc_info:
            await service.merge(doc_id, branch_id, owner)

        assert exc_info.value.code == "CORRUPT_BRANCH"
        assert (await store.get_document(doc_id)).version == 1
        assert (await store.get_branch(branch_id)).status == BranchStatus.PENDING


class TestStaleness:
    """Branches cut from an older version."""

    @pytest.mark.asyncio
    async def test_reject_policy_refuses_stale(
        self, service: DocumentService, store: MemoryStore, owner: Actor, collaborator: Actor,
    ) -> None:
        doc_id, first = await _doc_with_branch(service, owner, collaborator)
        second = await service.propose_branch(doc_id, "another edit", collaborator)
        await service.merge(doc_id, first, owner)

        with pytest.raises(InvalidBranchState):
            await service.merge(doc_id, second, owner)
        assert (await store.get_branch(second)).status == BranchStatus.PENDING
        assert await service.open_document(doc_id, owner) == "carol's text"

    @pytest.mark.asyncio
    async def test_overwrite_policy_last_merge_wins(
        self, store: MemoryStore, docs_home, owner: Actor, collaborator: Actor,
    ) -> None:
        service = DocumentService(
            store, config=DocsConfig(staleness_policy=StalenessPolicy.OVERWRITE), home=docs_home,
        )
        doc_id, first = await _doc_with_branch(service, owner, collaborator)
        second = await service.propose_branch(doc_id, "another edit", collaborator)

        await service.merge(doc_id, first, owner)
        doc = await service.merge(doc_id, second, owner)

        assert doc.version == 3
        assert await service.open_document(doc_id, owner) == "another edit"


class TestReject:
    """Owner rejects a pending branch."""

    @pytest.mark.asyncio
    async def test_reject_keeps_content(
        self, service: DocumentService, store: MemoryStore, owner: Actor, collaborator: Actor,
    ) -> None:
        doc_id, branch_id = await _doc_with_branch(service, owner, collaborator)

        branch = await service.reject(doc_id, branch_id, owner, reason="off topic")

        assert branch.status == BranchStatus.REJECTED
        assert branch.rejected_by == "alice"
        assert branch.reason == "off topic"
        assert (await store.get_document(doc_id)).version == 1
        assert await service.open_document(doc_id, owner) == "v1 text"

    @pytest.mark.asyncio
    async def test_rejected_cannot_merge(
        self, service: DocumentService, owner: Actor, collaborator: Actor,
    ) -> None:
        doc_id, branch_id = await _doc_with_branch(service, owner, collaborator)
        await service.reject(doc_id, branch_id, owner)
        with pytest.raises(InvalidBranchState):
            await service.merge(doc_id, branch_id, owner)

    @pytest.mark.asyncio
    async def test_non_owner_cannot_reject(
        self, service: DocumentService, store: MemoryStore, owner: Actor, collaborator: Actor,
    ) -> None:
        doc_id, branch_id = await _doc_with_branch(service, owner, collaborator)
        with pytest.raises(PermissionDenied):
            await service.reject(doc_id, branch_id, collaborator)
        assert (await store.get_branch(branch_id)).status == BranchStatus.PENDING
