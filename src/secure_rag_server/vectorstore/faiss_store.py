"""
In-Memory FAISS Vector Store

A process-local implementation of the vector store contract, used for
development, demos and tests when no external store is configured.

Key Properties
--------------
- Explicit ID management via IndexIDMap2 (string ids mapped to int64 ids)
- Idempotent upsert: an existing id is removed before it is re-added
- Atomic upsert: if the add fails, the replaced records are restored
- Deterministic add / delete / search behavior
- Concurrency-safe (thread locking)
- Memory only: vectors are never written to disk
"""

from __future__ import annotations

import logging
import math
from threading import RLock
from typing import Any, Dict, List, Optional, Sequence, Tuple

import faiss
import numpy as np

from .base import VectorStoreAdapter
from .models import QueryResult, VectorRecord
from ..core.errors import ConfigurationError, StoreError, ValidationError

logger = logging.getLogger("rag.store")

SUPPORTED_METRICS = ("cosine", "dotproduct", "euclidean")


class FaissVectorStore(VectorStoreAdapter):
    """
    FAISS-backed store with metadata filtering.

    Scores are cosine similarity (``cosine``), raw inner product
    (``dotproduct``) or ``1 / (1 + L2 distance)`` (``euclidean``); higher is
    always more relevant.
    """

    def __init__(
        self,
        dimension: int,
        metric: str = "cosine",
        index_name: str = "local",
    ) -> None:
        if dimension <= 0:
            raise ConfigurationError(f"Vector dimension must be positive; got {dimension}")
        if metric not in SUPPORTED_METRICS:
            raise ConfigurationError(
                f"Unsupported similarity metric {metric!r}; expected one of {SUPPORTED_METRICS}"
            )

        self.dimension = dimension
        self.metric = metric
        self.index_name = index_name

        self._index = self._init_index()
        self._ids_by_key: Dict[str, int] = {}
        self._records: Dict[int, Tuple[str, Dict[str, Any]]] = {}
        self._next_id: int = 0

        self._lock = RLock()

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _init_index(self) -> faiss.IndexIDMap2:
        if self.metric == "euclidean":
            base = faiss.IndexFlatL2(self.dimension)
        else:
            base = faiss.IndexFlatIP(self.dimension)
        return faiss.IndexIDMap2(base)

    def _as_matrix(self, vectors: Sequence[Sequence[float]]) -> np.ndarray:
        try:
            matrix = np.asarray(vectors, dtype="float32")
        except ValueError as exc:
            raise ValidationError("Vectors must all share one dimension.") from exc
        if matrix.ndim != 2 or matrix.shape[1] != self.dimension:
            raise ValidationError(
                f"Vectors must have dimension {self.dimension}."
            )
        if self.metric == "cosine":
            faiss.normalize_L2(matrix)
        return matrix

    def _score(self, raw: float) -> float:
        if self.metric == "euclidean":
            return 1.0 / (1.0 + math.sqrt(max(raw, 0.0)))
        return float(raw)

    def _remove_keys(self, keys: Sequence[str]) -> int:
        internal = [self._ids_by_key[k] for k in keys if k in self._ids_by_key]
        if not internal:
            return 0

        try:
            self._index.remove_ids(np.asarray(internal, dtype="int64"))
        except Exception as exc:
            raise StoreError(
                f"Failed to remove ids from FAISS: {type(exc).__name__}"
            ) from exc

        for key in keys:
            int_id = self._ids_by_key.pop(key, None)
            if int_id is not None:
                self._records.pop(int_id, None)

        return len(internal)

    def _snapshot(self, keys: Sequence[str]) -> List[Tuple[str, int, np.ndarray, Dict[str, Any]]]:
        """Copy the stored entries for ``keys`` so they can be put back."""
        entries = []
        for key in keys:
            int_id = self._ids_by_key.get(key)
            if int_id is None:
                continue
            _, metadata = self._records[int_id]
            entries.append((key, int_id, self._index.reconstruct(int_id), metadata))
        return entries

    def _restore(self, entries: List[Tuple[str, int, np.ndarray, Dict[str, Any]]]) -> None:
        if not entries:
            return

        # Stored vectors are already normalized; re-add them as they were.
        self._index.add_with_ids(
            np.vstack([vector for _, _, vector, _ in entries]).astype("float32"),
            np.asarray([int_id for _, int_id, _, _ in entries], dtype="int64"),
        )
        for key, int_id, _, metadata in entries:
            self._ids_by_key[key] = int_id
            self._records[int_id] = (key, metadata)

        logger.warning("Upsert failed; restored %d replaced vectors", len(entries))

    @staticmethod
    def _matches(metadata: Dict[str, Any], filter: Dict[str, Any]) -> bool:
        return all(metadata.get(key) == value for key, value in filter.items())

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        if not records:
            return

        # Last write wins for repeated ids inside one call.
        latest: Dict[str, VectorRecord] = {}
        for record in records:
            latest[record.id] = record
        batch = list(latest.values())

        # Validate the whole batch before touching the index.
        vectors = self._as_matrix([record.values for record in batch])

        with self._lock:
            replaced = self._snapshot([record.id for record in batch])
            self._remove_keys([record.id for record in batch])

            ids = np.arange(
                self._next_id,
                self._next_id + len(batch),
                dtype="int64",
            )
            self._next_id += len(batch)

            try:
                self._index.add_with_ids(vectors, ids)
            except Exception as exc:
                self._restore(replaced)
                raise StoreError(
                    f"Failed to add vectors to FAISS: {type(exc).__name__}"
                ) from exc

            for int_id, record in zip(ids, batch):
                self._ids_by_key[record.id] = int(int_id)
                self._records[int(int_id)] = (record.id, dict(record.metadata))

        logger.debug("Upserted %d vectors into local index", len(batch))

    async def query(
        self,
        vector: Sequence[float],
        top_k: int = 5,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[QueryResult]:
        if top_k <= 0:
            return []

        query = self._as_matrix([vector])

        with self._lock:
            total = self._index.ntotal
            if total == 0:
                return []

            # Filtering happens before truncation, so rank every candidate.
            k = total if filter else min(top_k, total)
            scores, idxs = self._index.search(query, k)

            results: List[QueryResult] = []
            for raw, idx in zip(scores[0], idxs[0]):
                idx = int(idx)
                if idx == -1 or idx not in self._records:
                    continue

                key, metadata = self._records[idx]
                if filter and not self._matches(metadata, filter):
                    continue

                results.append(
                    QueryResult(id=key, score=self._score(float(raw)), metadata=dict(metadata))
                )
                if len(results) >= top_k:
                    break

        return results

    async def delete(self, ids: Sequence[str]) -> None:
        with self._lock:
            removed = self._remove_keys(list(ids))
        logger.debug("Deleted %d vectors from local index", removed)

    async def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            documents = {
                metadata.get("document_id")
                for _, metadata in self._records.values()
                if metadata.get("document_id") is not None
            }
            return {
                "index_name": self.index_name,
                "total_vectors": int(self._index.ntotal),
                "total_documents": len(documents),
                "dimension": self.dimension,
                "metric": self.metric,
            }

    async def health_check(self) -> bool:
        return True
