from __future__ import annotations

from typing import Optional

import httpx

from .base import VectorStoreAdapter
from .faiss_store import FaissVectorStore
from .http_store import HttpVectorStore
from ..config import Settings
from ..core.errors import ConfigurationError


def create_vector_store(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> VectorStoreAdapter:
    """Build the vector store backend named by ``settings.vector_store_backend``."""
    backend = settings.vector_store_backend

    if backend == "http":
        api_key = (
            settings.vector_store_api_key.get_secret_value()
            if settings.vector_store_api_key
            else None
        )
        return HttpVectorStore(
            base_url=str(settings.vector_store_url) if settings.vector_store_url else None,
            api_key=api_key,
            index_name=settings.vector_store_index_name,
            timeout=settings.vector_store_timeout_seconds,
            transport=transport,
        )

    if backend == "memory":
        return FaissVectorStore(
            dimension=settings.embedding_dimension,
            metric=settings.similarity_metric,
            index_name=settings.vector_store_index_name,
        )

    raise ConfigurationError(f"Unsupported vector store backend: {backend!r}")
