"""
Merge coordinator — the owner promotes or refuses a proposed edit.

Merging decrypts the branch under the document key, re-encrypts the
same plaintext with a fresh nonce as the new canonical payload, bumps
the document version, and closes the branch. A branch that will not
decrypt is reported as corrupt; the document is never touched.

Staleness is handled by exactly one configured policy per coordinator:
    REJECT:    branch.parent_version must equal the current version
    OVERWRITE: the branch wins regardless of what landed since
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from .branches import BranchStore
from .cipher import decrypt, encrypt
from .config import StalenessPolicy
from .errors import (
    AuthenticationFailed,
    CorruptBranch,
    DocumentNotFound,
    InvalidBranchState,
    PermissionDenied,
)
from .models import Actor, Branch, Document
from .registry import KeyDistributionRegistry
from .store import DocumentStore

logger = logging.getLogger("skdocs.merge")


class MergeCoordinator:
    """Applies or rejects pending branches on behalf of the owner.

    Args:
        store: Backing document store.
        branches: Branch store for loading and resolving branches.
        registry: Key registry used to recover the owner's document key.
        policy: Staleness policy applied to every merge.
    """

    def __init__(
        self,
        store: DocumentStore,
        branches: BranchStore,
        registry: KeyDistributionRegistry,
        policy: StalenessPolicy = StalenessPolicy.REJECT,
    ) -> None:
        self._store = store
        self._branches = branches
        self._registry = registry
        self.policy = policy

    async def merge(self, doc_id: str, branch_id: str, actor: Actor) -> Document:
        """Promote a pending branch to canonical content.

        Returns:
            The updated document.

        Raises:
            DocumentNotFound: If the document or branch does not exist.
            PermissionDenied: If ``actor`` is not the owner.
            InvalidBranchState: If the branch is resolved, or stale under REJECT.
            CorruptBranch: If the branch payload fails authentication.
        """
        doc, branch = await self._load_for_owner(doc_id, branch_id, actor)

        if self.policy == StalenessPolicy.REJECT and branch.parent_version != doc.version:
            raise InvalidBranchState(
                f"branch {branch.id} was cut from v{branch.parent_version}, "
                f"document is at v{doc.version}"
            )

        doc_key = self._registry.unwrap_for(doc, actor.user_id, actor.key_pair)
        try:
            plaintext = decrypt(branch.payload, doc_key)
        except AuthenticationFailed as exc:
            logger.error("Branch %s on %s failed authentication", branch.id, doc.id)
            raise CorruptBranch(f"branch {branch.id} failed authentication") from exc

        doc.payload = encrypt(plaintext, doc_key)
        doc.version += 1
        doc.metadata.updated_at = datetime.now(timezone.utc)
        doc.metadata.last_modified_by = branch.created_by
        (await self._store.put_document(doc)).raise_for_error()

        await self._branches.mark_merged(branch, actor.user_id)
        logger.info("Merged branch %s into %s (now v%d)", branch.id, doc.id, doc.version)
        return doc

    async def reject(
        self,
        doc_id: str,
        branch_id: str,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> Branch:
        """Close a pending branch without touching canonical content.

        Raises:
            DocumentNotFound: If the document or branch does not exist.
            PermissionDenied: If ``actor`` is not the owner.
            InvalidBranchState: If the branch is already resolved.
        """
        _, branch = await self._load_for_owner(doc_id, branch_id, actor)
        branch = await self._branches.mark_rejected(branch, actor.user_id, reason)
        logger.info("Rejected branch %s on %s", branch.id, doc_id)
        return branch

    async def _load_for_owner(
        self, doc_id: str, branch_id: str, actor: Actor
    ) -> tuple[Document, Branch]:
        doc = await self._store.get_document(doc_id)
        if doc is None:
            raise DocumentNotFound(f"document {doc_id} not found")
        if actor.user_id != doc.sharing.owner:
            raise PermissionDenied(f"only the owner may resolve branches on {doc_id}")

        branch = await self._branches.require(doc_id, branch_id)
        if not branch.is_pending:
            raise InvalidBranchState(f"branch {branch.id} is already {branch.status.value}")
        return doc, branch
