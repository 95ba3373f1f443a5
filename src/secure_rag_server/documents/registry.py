"""
Document Registry

In-memory record of each document's ingestion state and the vector record
identifiers stored for it.

Durable storage of document metadata belongs to an external system; this
registry is the process-local view the API uses to answer status polls and
to find the chunk identifiers to delete.

Design choices
--------------
- In-memory only (no persistence across process restarts).
- Thread-safe access using a re-entrant lock.
- Copy-on-read semantics (callers cannot mutate internal state).
"""

from __future__ import annotations

from datetime import datetime, timezone
from threading import RLock
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict


DocumentState = Literal["pending", "indexed", "failed", "deleted"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus(BaseModel):
    """
    Ingestion status for one document.
    """

    document_id: str = Field(..., min_length=1)
    state: DocumentState = "pending"
    chunk_ids: List[str] = Field(default_factory=list)
    error: Optional[str] = Field(
        default=None,
        description="Exception class name of the last ingestion failure.",
    )
    updated_at: datetime = Field(default_factory=_now)

    model_config = ConfigDict(extra="forbid", frozen=True)


class DocumentRegistry:
    """
    Maps document ids to their latest ``DocumentStatus``.
    """

    def __init__(self) -> None:
        self._store: Dict[str, DocumentStatus] = {}
        self._lock = RLock()

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def mark_pending(self, document_id: str) -> DocumentStatus:
        """
        Record that ingestion has been queued.

        Chunk ids of a previous successful ingestion are kept so they can be
        cleaned up once the new ingestion lands.
        """
        with self._lock:
            previous = self._store.get(document_id)
            status = DocumentStatus(
                document_id=document_id,
                state="pending",
                chunk_ids=list(previous.chunk_ids) if previous else [],
            )
            self._store[document_id] = status
            return status

    def mark_indexed(self, document_id: str, chunk_ids: List[str]) -> DocumentStatus:
        with self._lock:
            status = DocumentStatus(
                document_id=document_id,
                state="indexed",
                chunk_ids=list(chunk_ids),
            )
            self._store[document_id] = status
            return status

    def mark_failed(self, document_id: str, error: str) -> DocumentStatus:
        with self._lock:
            previous = self._store.get(document_id)
            status = DocumentStatus(
                document_id=document_id,
                state="failed",
                chunk_ids=list(previous.chunk_ids) if previous else [],
                error=error,
            )
            self._store[document_id] = status
            return status

    def mark_deleted(self, document_id: str) -> Optional[DocumentStatus]:
        with self._lock:
            if document_id not in self._store:
                return None
            status = DocumentStatus(document_id=document_id, state="deleted")
            self._store[document_id] = status
            return status

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, document_id: str) -> Optional[DocumentStatus]:
        with self._lock:
            return self._store.get(document_id)

    def chunk_ids(self, document_id: str) -> List[str]:
        with self._lock:
            status = self._store.get(document_id)
            return list(status.chunk_ids) if status else []

    def clear_all(self) -> None:
        """
        Remove every entry. Intended for test setup/teardown.
        """
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
