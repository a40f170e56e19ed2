"""
Branch store — proposed edits and their one-way lifecycle.

    pending --merge--> merged
    pending --reject-> rejected

Nothing leaves a terminal state. A branch is encrypted under the same
document key as its document and remembers the canonical version it was
cut from, so merge can tell when it has gone stale.

Branch ids are ``<user_id>~<unix ms>``, the same key the records are
stored under.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from .cipher import encrypt
from .errors import DocumentNotFound, InvalidBranchState, PermissionDenied
from .models import Branch, BranchStatus, Document
from .registry import KeyDistributionRegistry
from .store import DocumentStore

logger = logging.getLogger("skdocs.branches")

EXPIRED_REASON = "expired"


def branch_id_for(user_id: str, timestamp_ms: int) -> str:
    return f"{user_id}~{timestamp_ms}"


class BranchStore:
    """Creates, loads, and resolves branch records.

    Args:
        store: Backing document store.
        registry: Access/key registry used for the creation check.
    """

    def __init__(self, store: DocumentStore, registry: KeyDistributionRegistry) -> None:
        self._store = store
        self._registry = registry

    async def create(
        self,
        doc: Document,
        plaintext: Union[str, bytes],
        doc_key: bytes,
        acting_user: str,
    ) -> Branch:
        """Store a pending branch and link it from the document record.

        Only the link is written to the document; its payload and sharing
        state are never written back from ``doc``, which may be stale.
        Read-only collaborators may propose; only the owner may resolve.

        Raises:
            PermissionDenied: If the acting user has no access to the document.
        """
        if not self._registry.has_access(doc, acting_user):
            raise PermissionDenied(f"{acting_user} cannot propose on document {doc.id}")

        timestamp_ms = int(time.time() * 1000)
        branch_id = branch_id_for(acting_user, timestamp_ms)
        while branch_id in doc.branches or await self._store.get_branch(branch_id) is not None:
            timestamp_ms += 1
            branch_id = branch_id_for(acting_user, timestamp_ms)

        branch = Branch(
            id=branch_id,
            doc_id=doc.id,
            created_by=acting_user,
            created_at=datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc),
            payload=encrypt(plaintext, doc_key),
            parent_version=doc.version,
        )
        (await self._store.put_branch(branch)).raise_for_error()

        (await self._store.link_branch(doc.id, branch.id)).raise_for_error()
        doc.branches.append(branch.id)

        logger.info("Branch %s proposed on %s (parent v%d)", branch.id, doc.id, doc.version)
        return branch

    async def get(self, branch_id: str) -> Optional[Branch]:
        return await self._store.get_branch(branch_id)

    async def require(self, doc_id: str, branch_id: str) -> Branch:
        """Load a branch that must exist and belong to ``doc_id``.

        Raises:
            DocumentNotFound: If the branch is missing or belongs elsewhere.
        """
        branch = await self._store.get_branch(branch_id)
        if branch is None or branch.doc_id != doc_id:
            raise DocumentNotFound(f"branch {branch_id} not found on document {doc_id}")
        return branch

    async def list_for_document(
        self,
        doc: Document,
        status: Optional[BranchStatus] = None,
    ) -> list[Branch]:
        """All branches linked from a document, oldest first."""
        branches: list[Branch] = []
        for branch_id in doc.branches:
            branch = await self._store.get_branch(branch_id)
            if branch is None:
                logger.debug("Branch %s linked from %s has not replicated yet", branch_id, doc.id)
                continue
            if status is None or branch.status == status:
                branches.append(branch)
        return sorted(branches, key=lambda b: b.created_at)

    async def mark_merged(self, branch: Branch, acting_user: str) -> Branch:
        """Transition pending -> merged and persist."""
        self._ensure_pending(branch)
        branch.status = BranchStatus.MERGED
        branch.merged_by = acting_user
        branch.merged_at = datetime.now(timezone.utc)
        (await self._store.put_branch(branch)).raise_for_error()
        return branch

    async def mark_rejected(
        self,
        branch: Branch,
        acting_user: str,
        reason: Optional[str] = None,
    ) -> Branch:
        """Transition pending -> rejected and persist."""
        self._ensure_pending(branch)
        branch.status = BranchStatus.REJECTED
        branch.rejected_by = acting_user
        branch.rejected_at = datetime.now(timezone.utc)
        branch.reason = reason
        (await self._store.put_branch(branch)).raise_for_error()
        return branch

    async def expire_pending(
        self,
        doc: Document,
        acting_user: str,
        max_age_days: int,
        now: Optional[datetime] = None,
    ) -> list[Branch]:
        """Reject pending branches older than ``max_age_days``.

        Raises:
            PermissionDenied: If the acting user is not the owner.
        """
        if acting_user != doc.sharing.owner:
            raise PermissionDenied(f"only the owner may expire branches on {doc.id}")

        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=max_age_days)
        expired: list[Branch] = []
        for branch in await self.list_for_document(doc, BranchStatus.PENDING):
            if branch.created_at < cutoff:
                expired.append(await self.mark_rejected(branch, acting_user, EXPIRED_REASON))
        if expired:
            logger.info("Expired %d stale branch(es) on %s", len(expired), doc.id)
        return expired

    @staticmethod
    def _ensure_pending(branch: Branch) -> None:
        if not branch.is_pending:
            raise InvalidBranchState(f"branch {branch.id} is already {branch.status.value}")
