"""
Key distribution registry — who holds a wrapped copy of a document key.

Access needs two things: a place on the document's access lists (or
ownership) AND a wrapped key in ``sharing.document_keys``. Either one
alone means no access. Revocation removes both but leaves the document
key untouched, so it stops future reads and nothing more.
"""

from __future__ import annotations

import logging
from typing import Optional

from .errors import PermissionDenied, RecipientKeyUnavailable
from .exchange import unwrap, wrap_for_recipient
from .keys import EphemeralKeyPair
from .models import AccessLevel, Document, WrappedKey
from .store import DocumentStore

logger = logging.getLogger("skdocs.registry")


class KeyDistributionRegistry:
    """Manages the per-document map of collaborator -> WrappedKey.

    Args:
        store: Store providing the ephemeral public key directory.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def recipient_public_key(self, user_id: str) -> str:
        """Look up a recipient's published ephemeral public key.

        Raises:
            RecipientKeyUnavailable: If the user has not published one yet.
        """
        public = await self._store.lookup_ephemeral_public_key(user_id)
        if not public:
            logger.info("No ephemeral public key published for %s", user_id)
            raise RecipientKeyUnavailable(f"no ephemeral public key for {user_id}")
        return public

    async def wrap_for(
        self,
        doc_key: bytes,
        user_id: str,
        sender_pair: EphemeralKeyPair,
    ) -> WrappedKey:
        """Look up a recipient and wrap the document key for them."""
        public = await self.recipient_public_key(user_id)
        return wrap_for_recipient(doc_key, public, sender_pair)

    def grant(
        self,
        doc: Document,
        user_id: str,
        level: AccessLevel,
        wrapped: WrappedKey,
    ) -> Document:
        """Record access and the user's wrapped key on the document.

        Re-granting at a different level moves the user between lists.
        """
        sharing = doc.sharing
        if level == AccessLevel.WRITE:
            sharing.write_access.add(user_id)
            sharing.read_access.discard(user_id)
        else:
            sharing.read_access.add(user_id)
            sharing.write_access.discard(user_id)
        sharing.document_keys[user_id] = wrapped
        return doc

    def grant_owner(self, doc: Document, wrapped: WrappedKey) -> Document:
        """Store the owner's self-wrapped key (owners are on no access list)."""
        doc.sharing.document_keys[doc.sharing.owner] = wrapped
        return doc

    def revoke(self, doc: Document, user_id: str) -> bool:
        """Remove a user's access and wrapped key.

        Returns:
            True if the user had anything to revoke.
        """
        sharing = doc.sharing
        had = (
            user_id in sharing.read_access
            or user_id in sharing.write_access
            or user_id in sharing.document_keys
        )
        sharing.read_access.discard(user_id)
        sharing.write_access.discard(user_id)
        sharing.document_keys.pop(user_id, None)
        return had

    def wrapped_key_for(self, doc: Document, user_id: str) -> Optional[WrappedKey]:
        return doc.sharing.document_keys.get(user_id)

    def has_access(self, doc: Document, user_id: str) -> bool:
        """Listed (or owner) and holding a wrapped key."""
        sharing = doc.sharing
        listed = (
            user_id == sharing.owner
            or user_id in sharing.read_access
            or user_id in sharing.write_access
        )
        return listed and user_id in sharing.document_keys

    def can_write(self, doc: Document, user_id: str) -> bool:
        if not self.has_access(doc, user_id):
            return False
        return user_id == doc.sharing.owner or user_id in doc.sharing.write_access

    def unwrap_for(self, doc: Document, user_id: str, pair: EphemeralKeyPair) -> bytes:
        """Recover the document key for a user from their registry entry.

        Raises:
            PermissionDenied: If the user has no access or no wrapped key.
            AuthenticationFailed: If the wrapped key does not open with ``pair``.
        """
        if not self.has_access(doc, user_id):
            raise PermissionDenied(f"{user_id} has no access to document {doc.id}")
        return unwrap(doc.sharing.document_keys[user_id], pair)

    def missing_keys(self, doc: Document) -> set[str]:
        """Listed collaborators that have no wrapped key (should be empty)."""
        sharing = doc.sharing
        return (sharing.read_access | sharing.write_access) - set(sharing.document_keys)
