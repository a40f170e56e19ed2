"""
Document service — the surface the editor/application layer talks to.

Wires the key pipeline (keys, cipher, exchange, registry) to the
collaboration pipeline (router, branches, merge) over a DocumentStore.
Every call names its actor explicitly; nothing here knows who is
"logged in".

Usage:
    service = DocumentService.from_home(Path("~/.skdocs").expanduser())
    alice = await service.register_user("alice")
    doc_id, key = await service.create_document("hello", alice, title="notes")
    await service.share_with(doc_id, "bob", AccessLevel.WRITE, alice)
"""

from __future__ import annotations

import logging
import secrets
import uuid
from pathlib import Path
from typing import Any, NoReturn, Optional, Union

from pydantic import BaseModel

from .audit import AuditEvent, AuditLog
from .branches import BranchStore
from .cipher import decrypt_text, encrypt
from .config import DocsConfig, load_config
from .ephemeral import EphemeralKeyStore
from .errors import DocumentNotFound, PermissionDenied, SkDocsError
from .exchange import wrap_for_recipient
from .keys import decode_key, encode_key, generate_document_key
from .merge import MergeCoordinator
from .models import (
    AccessLevel,
    Actor,
    Branch,
    BranchStatus,
    Document,
    DocumentMetadata,
    SharedDocNotification,
    SharingInfo,
)
from .registry import KeyDistributionRegistry
from .router import CommitResult, ConflictResolutionRouter
from .store import DocumentStore, create_store

logger = logging.getLogger("skdocs.service")


class ShareLink(BaseModel):
    """Public read link: share token plus the encoded document key.

    The key belongs in the URL fragment so it never reaches a server log.
    """

    token: str
    key: str

    def as_fragment(self) -> str:
        return f"{self.token}.{self.key}"

    @classmethod
    def parse(cls, fragment: str) -> "ShareLink":
        token, sep, key = fragment.strip().lstrip("#").partition(".")
        if not sep or not token or not key:
            raise ValueError("share link fragment must look like <token>.<key>")
        return cls(token=token, key=key)


class DocumentService:
    """End-to-end encrypted documents with owner-mediated collaboration.

    Args:
        store: Backing document store.
        config: SKDocs configuration. Defaults to built-in defaults.
        home: SKDocs home for the audit log and ephemeral keys.
            Without a home there is no audit trail and no key store.
        passphrase: Optional passphrase sealing ephemeral private keys.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: Optional[DocsConfig] = None,
        home: Optional[Path] = None,
        passphrase: Optional[str] = None,
    ) -> None:
        self.store = store
        self.config = config or DocsConfig()
        self.home = home
        self.keys = EphemeralKeyStore(home, passphrase) if home else None
        self.audit_log = AuditLog(home) if home else None
        self.registry = KeyDistributionRegistry(store)
        self.branches = BranchStore(store, self.registry)
        self.merger = MergeCoordinator(
            store, self.branches, self.registry, policy=self.config.staleness_policy,
        )
        self.router = ConflictResolutionRouter(store, self.branches)

    @classmethod
    def from_home(cls, home: Path, passphrase: Optional[str] = None) -> "DocumentService":
        """Build a service from the config found under ``home``."""
        config = load_config(home)
        return cls(create_store(config, home), config=config, home=home, passphrase=passphrase)

    # -------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------

    async def register_user(self, user_id: str) -> Actor:
        """Create (once) and publish a user's ephemeral pair.

        Raises:
            RuntimeError: If the service has no home to keep keys in.
        """
        keys = self._require_keys()
        pair = keys.load_or_create(user_id)
        await keys.publish(user_id, self.store)
        return Actor(user_id=user_id, key_pair=pair)

    def actor(self, user_id: str) -> Actor:
        """Load an already-registered user.

        Raises:
            PermissionDenied: If the user has no ephemeral key pair yet.
        """
        pair = self._require_keys().load(user_id)
        if pair is None:
            raise PermissionDenied(f"{user_id} has no ephemeral key pair; run init first")
        return Actor(user_id=user_id, key_pair=pair)

    # -------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------

    async def create_document(
        self,
        plaintext: Union[str, bytes],
        actor: Actor,
        title: str = "",
        tags: Optional[list[str]] = None,
    ) -> tuple[str, bytes]:
        """Create an encrypted document owned by ``actor``.

        Returns:
            (doc_id, document key). The key is also stored wrapped for the owner.
        """
        doc_key = generate_document_key()
        doc = Document(
            id=uuid.uuid4().hex,
            metadata=DocumentMetadata(
                title=title.strip(),
                last_modified_by=actor.user_id,
                tags=[t.strip() for t in (tags or []) if t.strip()],
            ),
            payload=encrypt(plaintext, doc_key),
            sharing=SharingInfo(owner=actor.user_id),
        )
        self.registry.grant_owner(
            doc, wrap_for_recipient(doc_key, actor.key_pair.public, actor.key_pair),
        )
        (await self.store.put_document(doc)).raise_for_error()

        self._audit(AuditEvent.DOC_CREATE, doc.id, "Created document", actor.user_id)
        return doc.id, doc_key

    async def read_document(self, doc_id: str, doc_key: bytes) -> str:
        """Decrypt a document's canonical content with a key the caller holds.

        Raises:
            DocumentNotFound: If the document does not exist.
            AuthenticationFailed: If the key is wrong or the payload was altered.
        """
        doc = await self._get(doc_id)
        return decrypt_text(doc.payload, doc_key)

    async def document_key(self, doc_id: str, actor: Actor) -> bytes:
        """Recover the document key from the actor's registry entry."""
        doc = await self._get(doc_id)
        return self._unwrap(doc, actor)

    async def open_document(self, doc_id: str, actor: Actor) -> str:
        """Unwrap the actor's key and decrypt the canonical content."""
        doc = await self._get(doc_id)
        return decrypt_text(doc.payload, self._unwrap(doc, actor))

    async def write_document(
        self,
        doc_id: str,
        plaintext: Union[str, bytes],
        actor: Actor,
    ) -> CommitResult:
        """Commit an edit; solo documents are overwritten, shared ones branch."""
        doc = await self._get(doc_id)
        doc_key = self._unwrap(doc, actor)
        result = await self.router.commit(doc, plaintext, doc_key, actor.user_id)

        if result.branch_id:
            self._audit(
                AuditEvent.BRANCH_PROPOSE,
                doc_id,
                f"Branch {result.branch_id} proposed",
                actor.user_id,
                branch_id=result.branch_id,
            )
        else:
            self._audit(
                AuditEvent.DOC_WRITE, doc_id, f"Wrote v{result.version}", actor.user_id,
                version=result.version,
            )
        return result

    async def delete_document(self, doc_id: str, actor: Actor) -> None:
        """Delete a document, its branches, and every wrapped key (owner only)."""
        doc = await self._get(doc_id)
        self._require_owner(doc, actor, "delete")

        for branch_id in doc.branches:
            (await self.store.delete_branch(branch_id)).raise_for_error()
        for user_id in doc.sharing.collaborators:
            (await self.store.delete_notification(user_id, doc_id)).raise_for_error()
        (await self.store.delete_document(doc_id)).raise_for_error()

        self._audit(AuditEvent.DOC_DELETE, doc_id, "Deleted document", actor.user_id)

    async def list_documents(self, user_id: str) -> list[Document]:
        """Documents the user owns or collaborates on."""
        docs = await self.store.list_documents(user_id)
        return [d for d in docs if self.registry.has_access(d, user_id)]

    async def get_metadata(self, doc_id: str, actor: Actor) -> DocumentMetadata:
        doc = await self._get(doc_id)
        if not self.registry.has_access(doc, actor.user_id):
            self._deny(doc_id, actor, "metadata")
        return doc.metadata

    # -------------------------------------------------------------------
    # Sharing
    # -------------------------------------------------------------------

    async def share_with(
        self,
        doc_id: str,
        user_id: str,
        access_level: Union[AccessLevel, str],
        actor: Actor,
    ) -> None:
        """Grant a collaborator access by wrapping the document key for them.

        Raises:
            PermissionDenied: If ``actor`` is not the owner.
            RecipientKeyUnavailable: If ``user_id`` has not published a key (retryable).
        """
        level = AccessLevel(access_level)
        doc = await self._get(doc_id)
        self._require_owner(doc, actor, "share")
        if user_id == doc.sharing.owner:
            raise ValueError("the owner already has access")

        doc_key = self._unwrap(doc, actor)
        wrapped = await self.registry.wrap_for(doc_key, user_id, actor.key_pair)
        self.registry.grant(doc, user_id, level, wrapped)
        (await self.store.put_document(doc)).raise_for_error()

        notification = SharedDocNotification(
            doc_id=doc_id,
            recipient=user_id,
            sender=actor.user_id,
            sender_ephemeral_public=actor.key_pair.public,
            access=level,
            is_public=doc.sharing.is_public,
        )
        (await self.store.put_notification(notification)).raise_for_error()

        self._audit(
            AuditEvent.DOC_SHARE,
            doc_id,
            f"Shared with {user_id} ({level.value})",
            actor.user_id,
            user=user_id,
            access=level.value,
        )

    async def revoke(self, doc_id: str, user_id: str, actor: Actor) -> bool:
        """Remove a collaborator's access and wrapped key.

        Content the user already decrypted stays with them; this only
        blocks future reads.

        Returns:
            True if the user had access to revoke.
        """
        doc = await self._get(doc_id)
        self._require_owner(doc, actor, "revoke")
        if user_id == doc.sharing.owner:
            raise ValueError("the owner cannot be revoked")

        had = self.registry.revoke(doc, user_id)
        (await self.store.put_document(doc)).raise_for_error()
        (await self.store.delete_notification(user_id, doc_id)).raise_for_error()

        self._audit(
            AuditEvent.DOC_REVOKE,
            doc_id,
            f"Revoked {user_id}",
            actor.user_id,
            user=user_id,
            had_access=had,
        )
        return had

    async def make_public(self, doc_id: str, actor: Actor) -> ShareLink:
        """Issue (or return) the public share link for a document."""
        doc = await self._get(doc_id)
        self._require_owner(doc, actor, "publish")
        doc_key = self._unwrap(doc, actor)

        if not doc.sharing.share_token:
            doc.sharing.share_token = secrets.token_urlsafe(32)
        doc.sharing.is_public = True
        (await self.store.put_document(doc)).raise_for_error()

        self._audit(AuditEvent.DOC_PUBLISH, doc_id, "Published", actor.user_id)
        return ShareLink(token=doc.sharing.share_token, key=encode_key(doc_key))

    async def make_private(self, doc_id: str, actor: Actor) -> None:
        """Withdraw the share token. Holders of the old link lose lookup access."""
        doc = await self._get(doc_id)
        self._require_owner(doc, actor, "unpublish")
        doc.sharing.is_public = False
        doc.sharing.share_token = None
        (await self.store.put_document(doc)).raise_for_error()
        self._audit(AuditEvent.DOC_UNPUBLISH, doc_id, "Unpublished", actor.user_id)

    async def read_shared(self, share_token: str, encoded_key: str) -> str:
        """Read a public document from its share link, no account needed.

        Raises:
            DocumentNotFound: If the token matches no public document.
            KeyDecodeFailed: If the key parameter is malformed.
            AuthenticationFailed: If the key does not open the document.
        """
        doc = await self.store.find_by_share_token(share_token)
        if doc is None or not doc.sharing.is_public:
            raise DocumentNotFound("no public document for that share token")
        return decrypt_text(doc.payload, decode_key(encoded_key))

    async def shared_with_me(self, actor: Actor) -> list[SharedDocNotification]:
        """The acting user's own share inbox."""
        return await self.store.list_notifications(actor.user_id)

    # -------------------------------------------------------------------
    # Branches
    # -------------------------------------------------------------------

    async def propose_branch(
        self,
        doc_id: str,
        plaintext: Union[str, bytes],
        actor: Actor,
    ) -> str:
        """Propose an edit as a pending branch, whatever the document's sharing.

        Returns:
            The new branch id.
        """
        doc = await self._get(doc_id)
        doc_key = self._unwrap(doc, actor)
        branch = await self.branches.create(doc, plaintext, doc_key, actor.user_id)
        self._audit(
            AuditEvent.BRANCH_PROPOSE, doc_id, f"Branch {branch.id} proposed", actor.user_id,
            branch_id=branch.id,
        )
        return branch.id

    async def read_branch(self, doc_id: str, branch_id: str, actor: Actor) -> str:
        """Decrypt a branch's proposed content for review."""
        doc = await self._get(doc_id)
        doc_key = self._unwrap(doc, actor)
        branch = await self.branches.require(doc_id, branch_id)
        return decrypt_text(branch.payload, doc_key)

    async def list_branches(
        self,
        doc_id: str,
        actor: Actor,
        status: Optional[BranchStatus] = None,
    ) -> list[Branch]:
        doc = await self._get(doc_id)
        if not self.registry.has_access(doc, actor.user_id):
            self._deny(doc_id, actor, "list branches")
        return await self.branches.list_for_document(doc, status)

    async def merge(self, doc_id: str, branch_id: str, actor: Actor) -> Document:
        """Owner merges a pending branch into canonical content."""
        try:
            doc = await self.merger.merge(doc_id, branch_id, actor)
        except PermissionDenied:
            self._deny(doc_id, actor, "merge")
        self._audit(
            AuditEvent.BRANCH_MERGE,
            doc_id,
            f"Merged {branch_id} as v{doc.version}",
            actor.user_id,
            branch_id=branch_id,
            version=doc.version,
        )
        return doc

    async def reject(
        self,
        doc_id: str,
        branch_id: str,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> Branch:
        """Owner rejects a pending branch; canonical content is unchanged."""
        try:
            branch = await self.merger.reject(doc_id, branch_id, actor, reason)
        except PermissionDenied:
            self._deny(doc_id, actor, "reject")
        self._audit(
            AuditEvent.BRANCH_REJECT,
            doc_id,
            f"Rejected {branch_id}",
            actor.user_id,
            branch_id=branch_id,
        )
        return branch

    async def expire_branches(self, doc_id: str, actor: Actor) -> list[Branch]:
        """Reject pending branches older than the configured expiry."""
        doc = await self._get(doc_id)
        expired = await self.branches.expire_pending(
            doc, actor.user_id, self.config.branch_expiry_days,
        )
        if expired:
            self._audit(
                AuditEvent.BRANCH_EXPIRE,
                doc_id,
                f"Expired {len(expired)} branch(es)",
                actor.user_id,
                branches=[b.id for b in expired],
            )
        return expired

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    async def _get(self, doc_id: str) -> Document:
        doc = await self.store.get_document(doc_id)
        if doc is None:
            raise DocumentNotFound(f"document {doc_id} not found")
        return doc

    def _unwrap(self, doc: Document, actor: Actor) -> bytes:
        try:
            return self.registry.unwrap_for(doc, actor.user_id, actor.key_pair)
        except PermissionDenied:
            self._deny(doc.id, actor, "read")

    def _require_owner(self, doc: Document, actor: Actor, action: str) -> None:
        if actor.user_id != doc.sharing.owner:
            self._deny(doc.id, actor, action)

    def _deny(self, doc_id: str, actor: Actor, action: str) -> NoReturn:
        self._audit(
            AuditEvent.ACCESS_DENIED,
            doc_id,
            f"{actor.user_id} denied {action}",
            actor.user_id,
            action=action,
            code=PermissionDenied.code,
        )
        raise PermissionDenied(f"{actor.user_id} may not {action} document {doc_id}")

    def _require_keys(self) -> EphemeralKeyStore:
        if self.keys is None:
            raise RuntimeError("DocumentService has no home; ephemeral keys unavailable")
        return self.keys

    def _audit(
        self,
        event: AuditEvent,
        doc_id: str,
        detail: str,
        actor: Optional[str] = None,
        **metadata: Any,
    ) -> None:
        """Log an event to the audit trail when one is configured."""
        if self.audit_log is None or not self.config.audit_enabled:
            return
        try:
            self.audit_log.record(event, detail, actor=actor, doc_id=doc_id, **metadata)
        except OSError as exc:
            logger.warning("Audit log unavailable: %s on %s (%s)", event.value, doc_id, exc)


__all__ = ["DocumentService", "ShareLink", "SkDocsError"]
