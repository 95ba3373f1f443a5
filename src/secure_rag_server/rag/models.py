"""
Retrieval Data Models

Documents entering the ingest pipeline and results leaving the retrieve
pipeline.
"""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, Field, ConfigDict


class Document(BaseModel):
    """
    A document submitted for ingestion.

    ``content`` emptiness is checked by the orchestrator so that it can be
    reported as a pipeline ``ValidationError``.
    """

    id: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., repr=False)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)


class RetrievalResult(BaseModel):
    """
    A query match promoted to caller-visible form.

    Lives only for the duration of one retrieval call. ``metadata`` is
    sanitized: it never contains ciphertext fields.
    """

    id: str
    content: str = Field(..., repr=False)
    score: float
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)
