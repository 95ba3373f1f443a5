"""
Embedding Data Models

This module defines the in-memory representation of a single embedding.

An ``EmbeddingVector`` holds plaintext vector components. It is owned by the
call stack that produced it: it is never persisted, never logged, and never
retained by a component across calls. The ``repr`` deliberately omits the
components so an accidental log line cannot leak them.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, ConfigDict


class EmbeddingVector(BaseModel):
    """
    A fixed-dimension embedding produced by an ``EmbeddingProvider``.
    """

    values: List[float] = Field(
        ...,
        min_length=1,
        repr=False,
        description="Plaintext vector components.",
    )

    model: str = Field(
        ...,
        min_length=1,
        description="Identifier of the model that produced the vector.",
    )

    usage: int = Field(
        default=0,
        ge=0,
        description="Token usage reported by the provider (0 when unavailable).",
    )

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )

    @property
    def dimension(self) -> int:
        return len(self.values)
