"""
HTTP Vector Store

Adapter for an external, encrypted similarity-search service reached over a
bearer-authenticated REST API. All calls target one named index and carry a
bounded timeout.

Wire Contract
-------------
- ``POST /indexes/{index}/upsert``  ``{"vectors": [{id, values, metadata}]}``
- ``POST /indexes/{index}/query``   ``{vector, topK, filter?, includeMetadata}``
  → ``{"matches": [{id, score, metadata}]}``
- ``POST /indexes/{index}/delete``  ``{"ids": [...]}``
- ``GET  /indexes/{index}/stats``
- ``GET  /health``
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError as PydanticValidationError

from .base import VectorStoreAdapter
from .models import QueryResult, VectorRecord
from ..core.errors import ConfigurationError, StoreError

logger = logging.getLogger("rag.store")


class HttpVectorStore(VectorStoreAdapter):
    """
    REST client for the external vector store.

    The store's own result ordering is returned untouched.
    """

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str],
        index_name: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Parameters
        ----------
        base_url : Optional[str]
            Root URL of the vector store API. Required.

        api_key : Optional[str]
            Bearer token. Required.

        index_name : str
            Name of the index every call targets.

        timeout : float
            Per-call timeout in seconds.

        transport : Optional[httpx.AsyncBaseTransport]
            Optional transport override (used by tests).
        """
        if not base_url:
            raise ConfigurationError("vector_store_url must be configured for the http backend.")
        if not api_key:
            raise ConfigurationError("vector_store_api_key must be configured for the http backend.")
        if not index_name:
            raise ConfigurationError("vector_store_index_name must be configured.")

        self.base_url = str(base_url).rstrip("/")
        self.index_name = index_name
        self.timeout = timeout
        self._api_key = api_key
        self._transport = transport

        logger.info("HTTP vector store configured for index %s", self.index_name)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        async with self._client() as client:
            try:
                response = await client.request(method, path, json=json)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.error(
                    "Vector store %s failed (%s): %s",
                    operation,
                    type(exc).__name__,
                    str(exc),
                )
                raise StoreError(
                    f"Vector store {operation} failed: {type(exc).__name__}"
                ) from exc

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as exc:
            raise StoreError(f"Vector store {operation} returned invalid JSON.") from exc

    @property
    def _index_path(self) -> str:
        return f"/indexes/{self.index_name}"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        if not records:
            return

        logger.debug("Upserting %d vectors", len(records))

        await self._request(
            "POST",
            f"{self._index_path}/upsert",
            "upsert",
            json={"vectors": [record.to_wire() for record in records]},
        )

        logger.debug("Upserted %d vectors", len(records))

    async def query(
        self,
        vector: Sequence[float],
        top_k: int = 5,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[QueryResult]:
        body: Dict[str, Any] = {
            "vector": list(vector),
            "topK": top_k,
            "includeMetadata": True,
        }
        if filter:
            body["filter"] = filter

        data = await self._request("POST", f"{self._index_path}/query", "query", json=body)

        matches = data.get("matches") if isinstance(data, dict) else None
        if not isinstance(matches, list):
            raise StoreError("Vector store query response missing 'matches' list.")

        try:
            results = [
                QueryResult(
                    id=match["id"],
                    score=match["score"],
                    metadata=match.get("metadata") or {},
                )
                for match in matches
            ]
        except (KeyError, TypeError, AttributeError, PydanticValidationError) as exc:
            raise StoreError("Vector store returned a malformed match.") from exc

        logger.debug("Vector store returned %d matches", len(results))
        return results[:top_k]

    async def delete(self, ids: Sequence[str]) -> None:
        if not ids:
            return

        logger.debug("Deleting %d vectors", len(ids))
        await self._request(
            "POST",
            f"{self._index_path}/delete",
            "delete",
            json={"ids": list(ids)},
        )

    async def get_stats(self) -> Dict[str, Any]:
        data = await self._request("GET", f"{self._index_path}/stats", "stats")
        return data if isinstance(data, dict) else {}

    async def health_check(self) -> bool:
        try:
            await self._request("GET", "/health", "health check")
        except Exception:
            logger.warning("Vector store health check failed", exc_info=True)
            return False
        return True
