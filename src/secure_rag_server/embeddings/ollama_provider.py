"""
Local Embedding Provider

Embedding backend for a locally served model (Ollama-compatible
``POST {base_url}/api/embeddings``). Local servers report no token usage, so
every vector is returned with ``usage=0``.
"""

from __future__ import annotations

from typing import Optional
import logging
import httpx

from .models import EmbeddingVector
from .openai_provider import _as_float_list
from .provider import EmbeddingProvider
from ..core.errors import ProviderError

logger = logging.getLogger("rag.embedder")


class OllamaEmbeddingProvider(EmbeddingProvider):
    """Embedding generator for a local model server."""

    def __init__(
        self,
        model: str,
        dimension: int,
        base_url: str = "http://localhost:11434",
        max_concurrency: int = 10,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(
            model=model,
            dimension=dimension,
            max_concurrency=max_concurrency,
            timeout=timeout,
        )
        self.endpoint = f"{str(base_url).rstrip('/')}/api/embeddings"
        self._transport = transport

        logger.info("Embedding provider initialized: local (%s)", self.model)

    async def embed(self, text: str) -> EmbeddingVector:
        payload = {
            "model": self.model,
            "prompt": text,
        }

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(self.endpoint, json=payload)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as exc:
                logger.error(
                    "Local embedding request failed (%s): %s",
                    type(exc).__name__,
                    str(exc),
                )
                raise ProviderError(
                    f"Local embedding failed: {type(exc).__name__}"
                ) from exc
            except ValueError as exc:
                raise ProviderError("Local embedding response is not valid JSON.") from exc

        if not isinstance(data, dict) or "embedding" not in data:
            raise ProviderError("Embedding response missing 'embedding' field.")

        return EmbeddingVector(
            values=_as_float_list(data["embedding"]),
            model=self.model,
            usage=0,
        )
