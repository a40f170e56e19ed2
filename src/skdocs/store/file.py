"""
File store — one JSON file per record, built for a replicated folder.

Point it at a Syncthing-shared directory and every peer sees the same
records. Each record is written to a temp file and renamed into place,
so a reader never observes half a document.

Directory layout:
    <root>/
    ├── documents/<doc_id>.json
    ├── branches/<user~timestamp>.json
    ├── directory/<user_id>.json        # published ephemeral public keys
    ├── tokens/<share_token>.json       # share token -> doc_id
    └── inbox/<user_id>/<doc_id>.json   # share notifications
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError

from ..models import Branch, Document, SharedDocNotification, StoreAck
from .base import DocumentStore, merge_branch_links, safe_id

logger = logging.getLogger("skdocs.store.file")


def _write_atomic(path: Path, data: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class FileStore(DocumentStore):
    """Filesystem-backed DocumentStore.

    Args:
        root: Directory holding all records.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser()
        self.documents_dir = self.root / "documents"
        self.branches_dir = self.root / "branches"
        self.directory_dir = self.root / "directory"
        self.tokens_dir = self.root / "tokens"
        self.inbox_dir = self.root / "inbox"

    @property
    def name(self) -> str:
        return "file"

    def ensure_dirs(self) -> None:
        """Create store directories if they don't exist."""
        for d in (
            self.documents_dir,
            self.branches_dir,
            self.directory_dir,
            self.tokens_dir,
            self.inbox_dir,
        ):
            d.mkdir(parents=True, exist_ok=True)

    # -- generic helpers ------------------------------------------------

    def _put(self, path: Path, record: BaseModel) -> StoreAck:
        try:
            _write_atomic(path, record.model_dump_json(indent=2) + "\n")
        except OSError as exc:
            logger.error("Write failed for %s: %s", path.name, exc)
            return StoreAck.failure(f"write failed for {path.name}")
        return StoreAck()

    def _load(self, path: Path, model: type[BaseModel]) -> Optional[BaseModel]:
        if not path.exists():
            return None
        try:
            return model.model_validate_json(path.read_text(encoding="utf-8"))
        except (ValidationError, OSError) as exc:
            logger.warning("Unreadable record %s: %s", path.name, exc)
            return None

    def _unlink(self, path: Path) -> StoreAck:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Delete failed for %s: %s", path.name, exc)
            return StoreAck.failure(f"delete failed for {path.name}")
        return StoreAck()

    # -- documents ------------------------------------------------------

    def _doc_path(self, doc_id: str) -> Path:
        return self.documents_dir / f"{safe_id(doc_id)}.json"

    async def get_document(self, doc_id: str) -> Optional[Document]:
        try:
            path = self._doc_path(doc_id)
        except ValueError:
            return None
        return self._load(path, Document)  # type: ignore[return-value]

    async def put_document(self, doc: Document) -> StoreAck:
        path = self._doc_path(doc.id)
        previous = await self.get_document(doc.id)
        record = doc
        if previous is not None:
            record = doc.model_copy(
                update={"branches": merge_branch_links(previous.branches, doc.branches)},
            )
        ack = self._put(path, record)
        if not ack.ok:
            return ack

        old_token = previous.sharing.share_token if previous else None
        new_token = doc.sharing.share_token
        if old_token and old_token != new_token:
            self._unlink(self.tokens_dir / f"{safe_id(old_token)}.json")
        if new_token and new_token != old_token:
            _write_atomic(
                self.tokens_dir / f"{safe_id(new_token)}.json",
                json.dumps({"doc_id": doc.id}),
            )
        return ack

    async def delete_document(self, doc_id: str) -> StoreAck:
        doc = await self.get_document(doc_id)
        if doc and doc.sharing.share_token:
            self._unlink(self.tokens_dir / f"{safe_id(doc.sharing.share_token)}.json")
        return self._unlink(self._doc_path(doc_id))

    async def list_documents(self, user_id: str) -> list[Document]:
        docs: list[Document] = []
        if not self.documents_dir.exists():
            return docs
        for f in sorted(self.documents_dir.glob("*.json")):
            doc = self._load(f, Document)
            if doc is None:
                continue
            sharing = doc.sharing  # type: ignore[attr-defined]
            if (
                sharing.owner == user_id
                or user_id in sharing.read_access
                or user_id in sharing.write_access
            ):
                docs.append(doc)  # type: ignore[arg-type]
        return docs

    async def find_by_share_token(self, token: str) -> Optional[Document]:
        try:
            path = self.tokens_dir / f"{safe_id(token)}.json"
        except ValueError:
            return None
        if not path.exists():
            return None
        try:
            doc_id = json.loads(path.read_text(encoding="utf-8"))["doc_id"]
        except (json.JSONDecodeError, KeyError, OSError):
            return None
        doc = await self.get_document(doc_id)
        if doc is None or doc.sharing.share_token != token:
            return None
        return doc

    # -- branches -------------------------------------------------------

    def _branch_path(self, branch_id: str) -> Path:
        return self.branches_dir / f"{safe_id(branch_id)}.json"

    async def get_branch(self, branch_id: str) -> Optional[Branch]:
        try:
            path = self._branch_path(branch_id)
        except ValueError:
            return None
        return self._load(path, Branch)  # type: ignore[return-value]

    async def put_branch(self, branch: Branch) -> StoreAck:
        return self._put(self._branch_path(branch.id), branch)

    async def delete_branch(self, branch_id: str) -> StoreAck:
        return self._unlink(self._branch_path(branch_id))

    async def link_branch(self, doc_id: str, branch_id: str) -> StoreAck:
        doc = await self.get_document(doc_id)
        if doc is None:
            return StoreAck.failure(f"document {doc_id} not found")
        if branch_id in doc.branches:
            return StoreAck()
        doc.branches.append(safe_id(branch_id))
        return self._put(self._doc_path(doc_id), doc)

    # -- key directory --------------------------------------------------

    async def lookup_ephemeral_public_key(self, user_id: str) -> Optional[str]:
        try:
            path = self.directory_dir / f"{safe_id(user_id)}.json"
        except ValueError:
            return None
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8")).get("public") or None
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Unreadable directory entry for %s: %s", user_id, exc)
            return None

    async def publish_ephemeral_public_key(self, user_id: str, public: str) -> StoreAck:
        entry = {
            "user_id": user_id,
            "public": public,
            "published_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            _write_atomic(self.directory_dir / f"{safe_id(user_id)}.json", json.dumps(entry, indent=2))
        except OSError as exc:
            logger.error("Directory publish failed for %s: %s", user_id, exc)
            return StoreAck.failure("directory publish failed")
        return StoreAck()

    # -- share notifications -------------------------------------------

    async def put_notification(self, notification: SharedDocNotification) -> StoreAck:
        path = self.inbox_dir / safe_id(notification.recipient) / f"{safe_id(notification.doc_id)}.json"
        return self._put(path, notification)

    async def list_notifications(self, user_id: str) -> list[SharedDocNotification]:
        notes: list[SharedDocNotification] = []
        try:
            box = self.inbox_dir / safe_id(user_id)
        except ValueError:
            return notes
        if not box.exists():
            return notes
        for f in sorted(box.glob("*.json")):
            note = self._load(f, SharedDocNotification)
            if note is not None:
                notes.append(note)  # type: ignore[arg-type]
        return notes

    async def delete_notification(self, user_id: str, doc_id: str) -> StoreAck:
        return self._unlink(self.inbox_dir / safe_id(user_id) / f"{safe_id(doc_id)}.json")
