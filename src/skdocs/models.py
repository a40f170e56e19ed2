"""
Pydantic models for documents, branches, and the keys that protect them.

Nothing in here ever holds a document key in the clear. Keys travel as
WrappedKey records (one per collaborator) or not at all.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .errors import StorageError
from .keys import EphemeralKeyPair


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AccessLevel(str, Enum):
    """What a collaborator may do with a shared document."""

    READ = "read"
    WRITE = "write"


class BranchStatus(str, Enum):
    """Lifecycle of a proposed edit. Transitions only leave PENDING."""

    PENDING = "pending"
    MERGED = "merged"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Actor:
    """The user performing an operation, with their ephemeral pair.

    Passed explicitly to every call; there is no ambient "current user".
    """

    user_id: str
    key_pair: EphemeralKeyPair


class EncryptedPayload(BaseModel):
    """AES-256-GCM output. All fields are unpadded base64url."""

    ciphertext: str
    nonce: str
    auth_tag: str


class WrappedKey(BaseModel):
    """A document key sealed for exactly one recipient.

    The recipient re-derives the ECDH secret from their own ephemeral
    private key and ``sender_ephemeral_public``.
    """

    ciphertext: str
    nonce: str
    sender_ephemeral_public: str
    wrapped_at: datetime = Field(default_factory=_now)


class DocumentMetadata(BaseModel):
    """Unencrypted descriptive fields of a document."""

    title: str = ""
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    last_modified_by: str = ""
    tags: list[str] = Field(default_factory=list)


class SharingInfo(BaseModel):
    """Who may see a document, and the wrapped keys that let them."""

    owner: str
    is_public: bool = False
    read_access: set[str] = Field(default_factory=set)
    write_access: set[str] = Field(default_factory=set)
    share_token: Optional[str] = None
    document_keys: dict[str, WrappedKey] = Field(default_factory=dict)

    @property
    def collaborators(self) -> set[str]:
        """Everyone other than the owner listed on the document."""
        return (self.read_access | self.write_access) - {self.owner}


class Document(BaseModel):
    """The canonical record of one document.

    Written as a single logical record; the storage adapter decides how
    that maps onto physical writes.
    """

    id: str
    version: int = Field(default=1, description="Canonical version, bumped on every canonical write")
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    payload: EncryptedPayload
    sharing: SharingInfo
    branches: list[str] = Field(default_factory=list)

    @property
    def is_solo(self) -> bool:
        """True when only the owner can reach this document."""
        return not self.sharing.is_public and not self.sharing.collaborators


class Branch(BaseModel):
    """A proposed, not-yet-canonical version of a shared document."""

    id: str
    doc_id: str
    created_by: str
    created_at: datetime = Field(default_factory=_now)
    payload: EncryptedPayload
    status: BranchStatus = BranchStatus.PENDING
    parent_version: int
    merged_at: Optional[datetime] = None
    merged_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    reason: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == BranchStatus.PENDING


class SharedDocNotification(BaseModel):
    """Inbox record telling a user a document was shared with them."""

    doc_id: str
    recipient: str
    sender: str
    sender_ephemeral_public: str = ""
    access: AccessLevel = AccessLevel.READ
    is_public: bool = False
    shared_at: datetime = Field(default_factory=_now)


class StoreAck(BaseModel):
    """Normalized acknowledgment from the storage layer."""

    ok: bool = True
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "StoreAck":
        return cls(ok=False, error=error)

    def raise_for_error(self) -> None:
        """Raise StorageError if the write was not acknowledged."""
        if not self.ok:
            raise StorageError(self.error or "write not acknowledged")
