"""
Embedding provider selection.

The backend is chosen once, from configuration, when the application starts.
"""

from __future__ import annotations

from typing import Optional

import httpx

from .ollama_provider import OllamaEmbeddingProvider
from .openai_provider import OpenAIEmbeddingProvider
from .provider import EmbeddingProvider
from ..config import Settings
from ..core.errors import ConfigurationError


def create_embedding_provider(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> EmbeddingProvider:
    """
    Build the embedding provider named by ``settings.embedding_provider``.

    Raises
    ------
    ConfigurationError
        If the provider name is unsupported or its configuration is invalid.
    """
    name = settings.embedding_provider

    if name == "hosted":
        api_key = (
            settings.openai_api_key.get_secret_value()
            if settings.openai_api_key
            else None
        )
        return OpenAIEmbeddingProvider(
            api_key=api_key,
            model=settings.embedding_model,
            dimension=settings.embedding_dimension,
            base_url=str(settings.openai_base_url),
            max_concurrency=settings.max_concurrent_embeddings,
            timeout=settings.embedding_timeout_seconds,
            transport=transport,
        )

    if name == "local":
        return OllamaEmbeddingProvider(
            model=settings.embedding_model,
            dimension=settings.embedding_dimension,
            base_url=str(settings.ollama_base_url),
            max_concurrency=settings.max_concurrent_embeddings,
            timeout=settings.embedding_timeout_seconds,
            transport=transport,
        )

    raise ConfigurationError(f"Unsupported embedding provider: {name!r}")
