"""
Audit trail — who shared, revoked, merged, and was refused.

One JSON object per line under ``<home>/security/audit.log``. Every
entry names the document it concerns, so a document's history can be
pulled out without parsing free text. Entries carry ids and error codes
only; a document key or a line of plaintext must never reach this file.

Usage:
    log = AuditLog(home)
    log.record(AuditEvent.DOC_SHARE, "Shared with carol", actor="alice", doc_id=doc_id)
    log.entries(doc_id=doc_id)
"""

from __future__ import annotations

import logging
import socket
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger("skdocs.audit")

AUDIT_RELPATH = Path("security") / "audit.log"


class AuditEvent(str, Enum):
    """Security-relevant document events."""

    DOC_CREATE = "DOC_CREATE"
    DOC_WRITE = "DOC_WRITE"
    DOC_DELETE = "DOC_DELETE"
    DOC_SHARE = "DOC_SHARE"
    DOC_REVOKE = "DOC_REVOKE"
    DOC_PUBLISH = "DOC_PUBLISH"
    DOC_UNPUBLISH = "DOC_UNPUBLISH"
    BRANCH_PROPOSE = "BRANCH_PROPOSE"
    BRANCH_MERGE = "BRANCH_MERGE"
    BRANCH_REJECT = "BRANCH_REJECT"
    BRANCH_EXPIRE = "BRANCH_EXPIRE"
    ACCESS_DENIED = "ACCESS_DENIED"


class AuditEntry(BaseModel):
    """One line of the audit log."""

    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event: AuditEvent
    doc_id: Optional[str] = None
    actor: Optional[str] = None
    detail: str = ""
    host: str = Field(default_factory=socket.gethostname)
    metadata: dict[str, Any] = Field(default_factory=dict)


class AuditLog:
    """Append-only audit log kept under an SKDocs home.

    Args:
        home: SKDocs home directory.
    """

    def __init__(self, home: Path) -> None:
        self.path = Path(home) / AUDIT_RELPATH

    def record(
        self,
        event: AuditEvent,
        detail: str,
        *,
        actor: Optional[str] = None,
        doc_id: Optional[str] = None,
        **metadata: Any,
    ) -> AuditEntry:
        """Append one event and return the entry written.

        Raises:
            OSError: If the log cannot be written.
        """
        entry = AuditEntry(
            event=event, doc_id=doc_id, actor=actor, detail=detail, metadata=metadata,
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(entry.model_dump_json() + "\n")
        return entry

    def entries(
        self,
        doc_id: Optional[str] = None,
        event: Optional[AuditEvent] = None,
        limit: int = 0,
    ) -> list[AuditEntry]:
        """Matching entries, oldest first; ``limit`` keeps the newest N."""
        matched = [
            e for e in self._iter_entries()
            if (doc_id is None or e.doc_id == doc_id)
            and (event is None or e.event == event)
        ]
        return matched[-limit:] if limit > 0 else matched

    def _iter_entries(self) -> Iterator[AuditEntry]:
        if not self.path.exists():
            return
        with self.path.open(encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    yield AuditEntry.model_validate_json(line)
                except ValidationError:
                    logger.debug("Skipping unparseable audit line %d", lineno)
