"""
Embedding Provider Interface

This module defines the capability shared by every embedding backend. A
concrete provider implements a single-text ``embed`` call; the base class
supplies bounded-concurrency batching on top of it.

Batching Semantics
------------------
- Input is partitioned into windows of ``max_concurrency`` texts.
- Calls within a window run concurrently.
- Windows run sequentially, so at most ``max_concurrency`` calls are ever in
  flight.
- Output order always matches input order.
- Any failure fails the whole batch; the remaining calls of the failing
  window are cancelled rather than left running.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Sequence

from .models import EmbeddingVector
from ..core.errors import ConfigurationError

logger = logging.getLogger("rag.embedder")


class EmbeddingProvider(ABC):
    """
    Asynchronous text embedding capability.

    Providers hold no per-call state and perform no caching; identical inputs
    are re-embedded on every call.
    """

    def __init__(
        self,
        model: str,
        dimension: int,
        max_concurrency: int = 10,
        timeout: float = 30.0,
    ) -> None:
        """
        Parameters
        ----------
        model : str
            Embedding model identifier sent with every request.

        dimension : int
            Expected vector length D for this model.

        max_concurrency : int
            Maximum number of concurrent embedding calls in ``embed_batch``.

        timeout : float
            Independent timeout (seconds) applied to every provider call.
        """
        if not model:
            raise ConfigurationError("Embedding model must be configured.")
        if dimension <= 0:
            raise ConfigurationError(f"Embedding dimension must be positive; got {dimension}")
        if max_concurrency <= 0:
            raise ConfigurationError(
                f"max_concurrent_embeddings must be positive; got {max_concurrency}"
            )

        self.model = model
        self.timeout = timeout
        self._dimension = dimension
        self._max_concurrency = max_concurrency

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def dimension(self) -> int:
        """Configured embedding dimension D."""
        return self._dimension

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    @abstractmethod
    async def embed(self, text: str) -> EmbeddingVector:
        """
        Embed a single text.

        Raises
        ------
        ProviderError
            If the call fails, times out, or the response is malformed.
        """

    async def embed_batch(self, texts: Sequence[str]) -> List[EmbeddingVector]:
        """
        Embed many texts with bounded concurrency.

        Parameters
        ----------
        texts : Sequence[str]
            Input texts.

        Returns
        -------
        List[EmbeddingVector]
            One vector per input, in input order.

        Raises
        ------
        ProviderError
            If any single call fails. No partial result is returned.
        """
        if not texts:
            return []

        results: List[EmbeddingVector] = []

        for start in range(0, len(texts), self._max_concurrency):
            window = list(texts[start : start + self._max_concurrency])
            results.extend(await self._embed_window(window))

            logger.debug(
                "Generated %d/%d embeddings with %s",
                len(results),
                len(texts),
                self.model,
            )

        return results

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _embed_window(self, window: List[str]) -> List[EmbeddingVector]:
        tasks = [asyncio.ensure_future(self.embed(text)) for text in window]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # Fail the window as a unit: stop siblings that are still running.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
