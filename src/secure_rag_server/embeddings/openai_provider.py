"""
Hosted Embedding Provider

This module implements the hosted-API embedding backend using the OpenAI
embeddings API (or any compatible provider). It is responsible for:

- One request per text, so ``embed_batch`` can bound in-flight calls exactly
- Network and transport error isolation
- Strict response validation
- Token usage reporting

The class is stateless and safe to reuse across requests.
"""

from __future__ import annotations

from typing import Optional
import logging
import httpx

from .models import EmbeddingVector
from .provider import EmbeddingProvider
from ..core.errors import ConfigurationError, ProviderError

logger = logging.getLogger("rag.embedder")


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    Hosted embedding generator backed by ``POST {base_url}/embeddings``.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        dimension: int,
        base_url: str = "https://api.openai.com/v1",
        max_concurrency: int = 10,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the hosted provider.

        Parameters
        ----------
        api_key : Optional[str]
            Bearer token for the embeddings API. Required.

        model : str
            Embedding model identifier.

        dimension : int
            Dimension D reported by this provider.

        base_url : str
            API root; ``/embeddings`` is appended.

        max_concurrency : int
            Window size for ``embed_batch``.

        timeout : float
            HTTP timeout for each request.

        transport : Optional[httpx.AsyncBaseTransport]
            Optional transport override (used by tests).
        """
        super().__init__(
            model=model,
            dimension=dimension,
            max_concurrency=max_concurrency,
            timeout=timeout,
        )
        if not api_key:
            raise ConfigurationError("Hosted embedding provider requires openai_api_key.")

        self._api_key = api_key
        self.endpoint = f"{str(base_url).rstrip('/')}/embeddings"
        self._transport = transport

        logger.info("Embedding provider initialized: hosted (%s)", self.model)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> EmbeddingVector:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        payload = {
            "model": self.model,
            "input": text,
        }

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(
                    self.endpoint,
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as exc:
                logger.error(
                    "Hosted embedding request failed (%s): %s",
                    type(exc).__name__,
                    str(exc),
                )
                raise ProviderError(
                    f"Hosted embedding failed: {type(exc).__name__}"
                ) from exc
            except ValueError as exc:
                raise ProviderError("Hosted embedding response is not valid JSON.") from exc

        return EmbeddingVector(
            values=self._extract_embedding(data),
            model=self.model,
            usage=self._extract_usage(data),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_embedding(data: dict) -> list[float]:
        """
        Parse and validate embedding output format.

        OpenAI returns:
            { "data": [ {"embedding": [...]} ], "usage": {"total_tokens": N} }
        """
        if not isinstance(data, dict) or "data" not in data:
            raise ProviderError("Embedding response missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list) or not records:
            raise ProviderError("'data' field must be a non-empty list.")

        record = records[0]
        if not isinstance(record, dict) or "embedding" not in record:
            raise ProviderError("Malformed embedding record in response.")

        return _as_float_list(record["embedding"])

    @staticmethod
    def _extract_usage(data: dict) -> int:
        usage = data.get("usage") or {}
        total = usage.get("total_tokens", 0) if isinstance(usage, dict) else 0
        return int(total) if isinstance(total, int) and total >= 0 else 0


def _as_float_list(raw: object) -> list[float]:
    if (
        not isinstance(raw, list)
        or not raw
        or not all(isinstance(x, (float, int)) and not isinstance(x, bool) for x in raw)
    ):
        raise ProviderError("Invalid embedding vector: must be a non-empty float list.")
    return [float(x) for x in raw]
