"""
In-memory store — for tests and single-process use.

Records are deep-copied on the way in and out, so callers never mutate
stored state except through an explicit put.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..models import Branch, Document, SharedDocNotification, StoreAck
from .base import DocumentStore, merge_branch_links

logger = logging.getLogger("skdocs.store.memory")


class MemoryStore(DocumentStore):
    """Dict-backed DocumentStore."""

    def __init__(self) -> None:
        self.documents: dict[str, Document] = {}
        self.branches: dict[str, Branch] = {}
        self.directory: dict[str, str] = {}
        self.inbox: dict[str, dict[str, SharedDocNotification]] = {}

    @property
    def name(self) -> str:
        return "memory"

    async def get_document(self, doc_id: str) -> Optional[Document]:
        doc = self.documents.get(doc_id)
        return doc.model_copy(deep=True) if doc else None

    async def put_document(self, doc: Document) -> StoreAck:
        record = doc.model_copy(deep=True)
        stored = self.documents.get(doc.id)
        if stored is not None:
            record.branches = merge_branch_links(stored.branches, record.branches)
        self.documents[doc.id] = record
        return StoreAck()

    async def delete_document(self, doc_id: str) -> StoreAck:
        self.documents.pop(doc_id, None)
        return StoreAck()

    async def list_documents(self, user_id: str) -> list[Document]:
        return [
            d.model_copy(deep=True)
            for d in self.documents.values()
            if d.sharing.owner == user_id
            or user_id in d.sharing.read_access
            or user_id in d.sharing.write_access
        ]

    async def find_by_share_token(self, token: str) -> Optional[Document]:
        for doc in self.documents.values():
            if doc.sharing.share_token and doc.sharing.share_token == token:
                return doc.model_copy(deep=True)
        return None

    async def get_branch(self, branch_id: str) -> Optional[Branch]:
        branch = self.branches.get(branch_id)
        return branch.model_copy(deep=True) if branch else None

    async def put_branch(self, branch: Branch) -> StoreAck:
        self.branches[branch.id] = branch.model_copy(deep=True)
        return StoreAck()

    async def delete_branch(self, branch_id: str) -> StoreAck:
        self.branches.pop(branch_id, None)
        return StoreAck()

    async def link_branch(self, doc_id: str, branch_id: str) -> StoreAck:
        doc = self.documents.get(doc_id)
        if doc is None:
            return StoreAck.failure(f"document {doc_id} not found")
        if branch_id not in doc.branches:
            doc.branches.append(branch_id)
        return StoreAck()

    async def lookup_ephemeral_public_key(self, user_id: str) -> Optional[str]:
        return self.directory.get(user_id)

    async def publish_ephemeral_public_key(self, user_id: str, public: str) -> StoreAck:
        self.directory[user_id] = public
        return StoreAck()

    async def put_notification(self, notification: SharedDocNotification) -> StoreAck:
        box = self.inbox.setdefault(notification.recipient, {})
        box[notification.doc_id] = notification.model_copy(deep=True)
        return StoreAck()

    async def list_notifications(self, user_id: str) -> list[SharedDocNotification]:
        return [n.model_copy(deep=True) for n in self.inbox.get(user_id, {}).values()]

    async def delete_notification(self, user_id: str, doc_id: str) -> StoreAck:
        self.inbox.get(user_id, {}).pop(doc_id, None)
        return StoreAck()
