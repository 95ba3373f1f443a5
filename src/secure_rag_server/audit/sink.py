"""
Audit Sink

The observability collaborator that receives retrieval attributions and
ingestion outcomes. Persisting audit events is the job of an external system;
this module defines the contract and a default implementation that emits one
structured log record per event on the ``rag.audit`` logger.

Audit events carry identifiers, counts, scores and fingerprints only. They
never carry chunk text, query text, vectors or payloads.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field, ConfigDict

logger = logging.getLogger("rag.audit")


class AuditEvent(BaseModel):
    action: str = Field(..., min_length=1)
    resource_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(extra="forbid", frozen=True)


class AuditSink(Protocol):
    async def record(self, event: AuditEvent) -> None:
        ...


class LoggingAuditSink:
    """Writes audit events to the ``rag.audit`` logger."""

    async def record(self, event: AuditEvent) -> None:
        logger.info(
            "audit action=%s resource=%s details=%s",
            event.action,
            event.resource_id or "-",
            event.details,
        )


class MemoryAuditSink:
    """Keeps events in a list. Used by tests and local tooling."""

    def __init__(self) -> None:
        self.events: List[AuditEvent] = []

    async def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self) -> List[str]:
        return [event.action for event in self.events]
