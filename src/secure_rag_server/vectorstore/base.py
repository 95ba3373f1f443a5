"""
Vector Store Adapter Contract

Every similarity-search backend implements this interface. The orchestrator
depends only on it, never on a concrete backend.

Contract
--------
- ``upsert`` is idempotent per record id and all-or-nothing per call.
- ``query`` returns at most ``top_k`` matches, ordered by descending
  similarity; an optional metadata filter narrows candidates before ranking.
- ``delete`` ignores identifiers that do not exist.
- ``health_check`` never raises.
- Transport failures and timeouts raise ``StoreError``; they are never
  reported as "no matches".
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from .models import QueryResult, VectorRecord


class VectorStoreAdapter(ABC):

    @abstractmethod
    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        ...

    @abstractmethod
    async def query(
        self,
        vector: Sequence[float],
        top_k: int = 5,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[QueryResult]:
        ...

    @abstractmethod
    async def delete(self, ids: Sequence[str]) -> None:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        ...

    async def close(self) -> None:
        """Release any held connections. Default: nothing to release."""
