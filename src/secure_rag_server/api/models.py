"""
API Models

Pydantic request/response schemas for the HTTP surface.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- Responses never carry vectors or encrypted payloads
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict


# ---------------------------------------------------------------------
# Document Models
# ---------------------------------------------------------------------

class DocumentCreateRequest(BaseModel):
    """
    Request to ingest a document. An id is generated when omitted.
    """
    id: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class DocumentAccepted(BaseModel):
    document_id: str
    status: Literal["queued"] = "queued"
    queue_size: int = Field(..., ge=0)

    model_config = ConfigDict(extra="forbid")


class DocumentStatusResponse(BaseModel):
    document_id: str
    state: Literal["pending", "indexed", "failed", "deleted"]
    chunk_count: int = Field(..., ge=0)
    error: Optional[str] = None
    updated_at: str

    model_config = ConfigDict(extra="forbid")


class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    """
    status: Literal["deleted", "ok"]
    count: Optional[int] = Field(default=None, ge=0)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Retrieval Models
# ---------------------------------------------------------------------

class RetrieveRequest(BaseModel):
    query: str = Field(..., min_length=1)
    top_k: Optional[int] = Field(default=None, ge=1, le=100)
    filter: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


class SourceResult(BaseModel):
    """
    Per-source attribution for one retrieved chunk.
    """
    id: str
    score: float
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class RetrieveResponse(BaseModel):
    context: str
    sources: List[SourceResult] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Health Models
# ---------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    vector_store: bool

    model_config = ConfigDict(extra="forbid")
