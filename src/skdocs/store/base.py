"""
Storage contract — what the core needs from the replicated store.

The core sees one logical record per document and per branch. How a
backend fans that out physically (graph nodes, files, rows) is its own
business. Every write comes back as a typed StoreAck.

Branch links on a document are append-only. ``link_branch`` adds one
without touching the rest of the record, and ``put_document`` keeps
every link already stored, so a writer holding an older copy of the
document cannot drop a proposal.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Optional

from ..models import Branch, Document, SharedDocNotification, StoreAck

_SAFE_ID = re.compile(r"^[A-Za-z0-9._@~+-]{1,200}$")


def safe_id(name: str) -> str:
    """Reject ids that could escape a directory when used as a file name.

    Raises:
        ValueError: If ``name`` is outside the allowed character set.
    """
    if not isinstance(name, str) or not _SAFE_ID.match(name) or name in (".", ".."):
        raise ValueError(f"Unsafe record id: {name!r}")
    return name


def merge_branch_links(stored: list[str], incoming: list[str]) -> list[str]:
    """Stored links first, then any new ones from ``incoming``, in order."""
    merged = list(stored)
    merged.extend(b for b in incoming if b not in merged)
    return merged


class DocumentStore(ABC):
    """Abstract async document/branch/key-directory store."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""

    # -- documents ------------------------------------------------------

    @abstractmethod
    async def get_document(self, doc_id: str) -> Optional[Document]:
        """Fetch a document record, or None if absent."""

    @abstractmethod
    async def put_document(self, doc: Document) -> StoreAck:
        """Write a whole document record atomically.

        Branch links already stored are kept even if ``doc`` lacks them.
        """

    @abstractmethod
    async def delete_document(self, doc_id: str) -> StoreAck:
        """Remove a document record and its share-token index."""

    @abstractmethod
    async def list_documents(self, user_id: str) -> list[Document]:
        """Documents the user owns or appears on."""

    @abstractmethod
    async def find_by_share_token(self, token: str) -> Optional[Document]:
        """Alternate lookup for public documents."""

    # -- branches -------------------------------------------------------

    @abstractmethod
    async def get_branch(self, branch_id: str) -> Optional[Branch]:
        """Fetch a branch record, or None if absent."""

    @abstractmethod
    async def put_branch(self, branch: Branch) -> StoreAck:
        """Write a whole branch record atomically."""

    @abstractmethod
    async def delete_branch(self, branch_id: str) -> StoreAck:
        """Remove a branch record."""

    @abstractmethod
    async def link_branch(self, doc_id: str, branch_id: str) -> StoreAck:
        """Append a branch id to a stored document, changing nothing else.

        Re-reads the current record, so it never writes back a stale
        payload or sharing map. Returns a failed ack if the document is
        gone.
        """

    # -- key directory --------------------------------------------------

    @abstractmethod
    async def lookup_ephemeral_public_key(self, user_id: str) -> Optional[str]:
        """A user's published ephemeral public key, or None."""

    @abstractmethod
    async def publish_ephemeral_public_key(self, user_id: str, public: str) -> StoreAck:
        """Publish (or replace) a user's ephemeral public key."""

    # -- share notifications -------------------------------------------

    @abstractmethod
    async def put_notification(self, notification: SharedDocNotification) -> StoreAck:
        """Drop a share notification into the recipient's inbox."""

    @abstractmethod
    async def list_notifications(self, user_id: str) -> list[SharedDocNotification]:
        """All share notifications addressed to a user."""

    @abstractmethod
    async def delete_notification(self, user_id: str, doc_id: str) -> StoreAck:
        """Remove a user's notification for a document."""
