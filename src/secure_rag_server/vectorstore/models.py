"""
Vector Store Data Models

Records exchanged with the external similarity-search service.
"""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, Field, ConfigDict


def chunk_record_id(document_id: str, chunk_index: int) -> str:
    """Deterministic record identifier for one chunk of a document."""
    return f"{document_id}_chunk_{chunk_index}"


class VectorRecord(BaseModel):
    """
    One stored unit: identifier, vector, and free-form metadata.

    The identifier is unique within the store; upserting an existing
    identifier overwrites the record.
    """

    id: str = Field(..., min_length=1)
    values: List[float] = Field(..., min_length=1, repr=False)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "values": self.values,
            "metadata": self.metadata,
        }


class QueryResult(BaseModel):
    """
    One match returned by a similarity search, in store order.
    """

    id: str = Field(..., min_length=1)
    score: float
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")
