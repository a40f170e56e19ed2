"""
Conflict resolution router — last-write-wins or a branch, per edit.

A document only its owner can reach gets written straight through: the
replicated store's own ordering is enough when there is one logical
author across many devices. Any other document turns the edit into a
pending branch for the owner to merge.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel

from .branches import BranchStore
from .cipher import encrypt
from .errors import PermissionDenied
from .models import Document
from .store import DocumentStore

logger = logging.getLogger("skdocs.router")


class WriteRoute(str, Enum):
    """How an edit reaches the document."""

    LAST_WRITE_WINS = "last_write_wins"
    BRANCH = "branch"


class CommitResult(BaseModel):
    """Outcome of committing one edit."""

    doc_id: str
    route: WriteRoute
    version: int
    branch_id: Optional[str] = None


class ConflictResolutionRouter:
    """Decides and executes the write path for an edit.

    Args:
        store: Backing document store.
        branches: Branch store used for shared documents.
    """

    def __init__(self, store: DocumentStore, branches: BranchStore) -> None:
        self._store = store
        self._branches = branches

    @staticmethod
    def route(doc: Document, acting_user: str) -> WriteRoute:
        """Pick the write path for ``acting_user`` editing ``doc``."""
        if acting_user == doc.sharing.owner and doc.is_solo:
            return WriteRoute.LAST_WRITE_WINS
        return WriteRoute.BRANCH

    async def commit(
        self,
        doc: Document,
        plaintext: Union[str, bytes],
        doc_key: bytes,
        acting_user: str,
    ) -> CommitResult:
        """Apply an edit along its route.

        Raises:
            PermissionDenied: If a non-owner edits a document nobody shared with them.
        """
        route = self.route(doc, acting_user)

        if route == WriteRoute.LAST_WRITE_WINS:
            doc.payload = encrypt(plaintext, doc_key)
            doc.version += 1
            doc.metadata.updated_at = datetime.now(timezone.utc)
            doc.metadata.last_modified_by = acting_user
            (await self._store.put_document(doc)).raise_for_error()
            logger.debug("Last-write-wins on %s (now v%d)", doc.id, doc.version)
            return CommitResult(doc_id=doc.id, route=route, version=doc.version)

        if doc.is_solo and acting_user != doc.sharing.owner:
            raise PermissionDenied(f"{acting_user} has no access to document {doc.id}")

        branch = await self._branches.create(doc, plaintext, doc_key, acting_user)
        return CommitResult(
            doc_id=doc.id,
            route=route,
            version=doc.version,
            branch_id=branch.id,
        )
