from functools import lru_cache

from fastapi import Request

from ..audit.sink import AuditSink, LoggingAuditSink
from ..chunking.segmenter import Segmenter
from ..config import settings
from ..documents.queue import IngestionQueue
from ..documents.registry import DocumentRegistry
from ..embeddings.factory import create_embedding_provider
from ..embeddings.provider import EmbeddingProvider
from ..rag.orchestrator import RetrievalOrchestrator
from ..security.cipher import EncryptionConfig, VectorCipher
from ..core.errors import ConfigurationError
from ..vectorstore import VectorStoreAdapter, create_vector_store


@lru_cache
def get_cipher() -> VectorCipher:
    if settings.encryption_key_hex is None:
        raise ConfigurationError("encryption_key_hex is not configured.")
    return VectorCipher(
        EncryptionConfig(
            key_hex=settings.encryption_key_hex,
            algorithm=settings.encryption_algorithm,
        )
    )


@lru_cache
def get_segmenter() -> Segmenter:
    return Segmenter(
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )


@lru_cache
def get_embedder() -> EmbeddingProvider:
    return create_embedding_provider(settings)


@lru_cache
def get_vector_store() -> VectorStoreAdapter:
    return create_vector_store(settings)


@lru_cache
def get_orchestrator() -> RetrievalOrchestrator:
    return RetrievalOrchestrator(
        segmenter=get_segmenter(),
        embedder=get_embedder(),
        cipher=get_cipher(),
        store=get_vector_store(),
        max_context_chunks=settings.max_context_chunks,
        similarity_threshold=settings.similarity_threshold,
        encrypt_chunk_text=settings.encrypt_chunk_text,
        verify_payload_integrity=settings.verify_payload_integrity,
    )


@lru_cache
def get_registry() -> DocumentRegistry:
    return DocumentRegistry()


@lru_cache
def get_audit_sink() -> AuditSink:
    return LoggingAuditSink()


def get_ingestion_queue(request: Request) -> IngestionQueue:
    # Created by the application lifespan, bound to the running event loop.
    return request.app.state.ingestion_queue
