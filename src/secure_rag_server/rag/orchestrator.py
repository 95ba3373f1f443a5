"""
Retrieval Orchestrator

Composes the segmenter, embedding provider, cipher and vector store into the
two pipelines of the service.

Pipeline Flow
-------------
1. Ingest:   segment → embed → validate → encrypt → upsert
2. Retrieve: embed query → search → threshold filter → verify/decrypt
             in memory → return in store order

Storage Model
-------------
The vector store is treated as the encryption boundary for the searchable
vector: each record's ``values`` carry the plaintext embedding, sent over an
authenticated TLS channel to a store that encrypts at rest. Independently,
every record carries an AES-GCM encrypted copy of its vector in metadata
(``encrypted_vector``), sealed with the record id and the SHA-256 of the
chunk text (``content_hash``) as associated data. On retrieval the text must
hash to ``content_hash`` and the copy must open under that binding before
the text is released. Any mismatch fails the whole call.

Nothing produced here (vectors, decrypted payloads, chunk text) is logged or
retained after the call returns.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from .models import Document, RetrievalResult
from ..chunking.segmenter import Segmenter, TextChunk
from ..core.errors import (
    ConfigurationError,
    IntegrityError,
    ProviderError,
    StoreError,
    ValidationError,
)
from ..embeddings.models import EmbeddingVector
from ..embeddings.provider import EmbeddingProvider
from ..security.cipher import VectorCipher
from ..vectorstore.base import VectorStoreAdapter
from ..vectorstore.models import QueryResult, VectorRecord, chunk_record_id

logger = logging.getLogger("rag.orchestrator")


NO_CONTEXT_SENTINEL = "No relevant context found."

# Metadata keys written by the ingest pipeline. Document metadata cannot
# override them.
RESERVED_METADATA_KEYS = frozenset({
    "document_id",
    "chunk_index",
    "chunk_text",
    "chunk_text_encrypted",
    "content_hash",
    "embedding_model",
    "encrypted",
    "encrypted_vector",
})

# Never exposed to callers of retrieve().
SANITIZED_METADATA_KEYS = frozenset({
    "chunk_text",
    "chunk_text_encrypted",
    "content_hash",
    "encrypted_vector",
})


def integrity_binding(record_id: str, content_hash: str) -> bytes:
    """
    Associated data sealed into a record's ``encrypted_vector``.

    Binds the payload to the record id and the fingerprint of its chunk
    text, so a payload copied to another record or left next to rewritten
    text no longer authenticates.
    """
    return f"{record_id}\n{content_hash}".encode("utf-8")


def assemble_context(results: Sequence[RetrievalResult]) -> str:
    """
    Build the context string handed to the response generator.

    Results are numbered from 1 in the order received and separated by a
    blank line. Only result text appears; no ids, scores or payloads.
    """
    if not results:
        return NO_CONTEXT_SENTINEL

    return "\n\n".join(
        f"[{rank}] {result.content}"
        for rank, result in enumerate(results, start=1)
    )


class RetrievalOrchestrator:
    """
    Ingest and retrieve pipelines over injected components.
    """

    def __init__(
        self,
        segmenter: Segmenter,
        embedder: EmbeddingProvider,
        cipher: VectorCipher,
        store: VectorStoreAdapter,
        max_context_chunks: int = 5,
        similarity_threshold: float = 0.7,
        encrypt_chunk_text: bool = False,
        verify_payload_integrity: bool = True,
    ) -> None:
        """
        Parameters
        ----------
        segmenter : Segmenter
            Splits documents into chunks.

        embedder : EmbeddingProvider
            Produces query and chunk embeddings; its ``dimension`` is the
            length every vector is validated against.

        cipher : VectorCipher
            Encrypts vectors (and optionally chunk text) before upsert.

        store : VectorStoreAdapter
            External similarity-search service.

        max_context_chunks : int
            Default ``top_k`` for retrieval.

        similarity_threshold : float
            Inclusive minimum score for a match to be returned.

        encrypt_chunk_text : bool
            Store chunk text as an encrypted payload instead of plaintext.

        verify_payload_integrity : bool
            Check each match's text fingerprint and encrypted vector before
            releasing it.
        """
        if max_context_chunks <= 0:
            raise ConfigurationError("max_context_chunks must be positive.")
        if not 0.0 <= similarity_threshold <= 1.0:
            raise ConfigurationError("similarity_threshold must be within [0, 1].")

        self.segmenter = segmenter
        self.embedder = embedder
        self.cipher = cipher
        self.store = store
        self.max_context_chunks = max_context_chunks
        self.similarity_threshold = similarity_threshold
        self.encrypt_chunk_text = encrypt_chunk_text
        self.verify_payload_integrity = verify_payload_integrity

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _validate_dimension(self, vector: EmbeddingVector) -> None:
        if vector.dimension != self.embedder.dimension:
            raise ValidationError(
                f"Embedding dimension mismatch: expected {self.embedder.dimension}, "
                f"got {vector.dimension}."
            )

    def _build_record(
        self,
        document: Document,
        chunk: TextChunk,
        vector: EmbeddingVector,
    ) -> VectorRecord:
        metadata: Dict[str, Any] = {
            key: value
            for key, value in chunk.metadata.items()
            if key not in RESERVED_METADATA_KEYS
        }

        record_id = chunk_record_id(document.id, chunk.index)
        content_hash = self.cipher.hash(chunk.text)

        metadata.update(
            document_id=document.id,
            chunk_index=chunk.index,
            content_hash=content_hash,
            embedding_model=vector.model,
            encrypted=True,
            encrypted_vector=self.cipher.encrypt_vector(
                vector.values, integrity_binding(record_id, content_hash)
            ).encode(),
        )

        if self.encrypt_chunk_text:
            metadata["chunk_text_encrypted"] = self.cipher.encrypt_text(
                chunk.text, record_id.encode("utf-8")
            ).encode()
        else:
            metadata["chunk_text"] = chunk.text

        return VectorRecord(id=record_id, values=vector.values, metadata=metadata)

    def _verify(self, match: QueryResult, content: str) -> None:
        """
        Authenticate a match before its text is released.

        The chunk text must hash to the stored ``content_hash``, and the
        ``encrypted_vector`` must open under the binding of this record id
        and that hash. The decrypted vector is dropped immediately.
        """
        metadata = match.metadata
        content_hash = metadata.get("content_hash")
        encrypted_vector = metadata.get("encrypted_vector")

        if not content_hash or not encrypted_vector:
            logger.error("Match %s is missing its integrity fields", match.id)
            raise IntegrityError(f"Match {match.id} carries no integrity fields.")

        if self.cipher.hash(content) != content_hash:
            logger.error("Chunk text of match %s does not match its fingerprint", match.id)
            raise IntegrityError(f"Chunk text of match {match.id} failed verification.")

        self.cipher.decrypt_vector(encrypted_vector, integrity_binding(match.id, content_hash))

    def _promote(self, match: QueryResult) -> RetrievalResult:
        metadata = match.metadata

        if metadata.get("chunk_text_encrypted"):
            content = self.cipher.decrypt_text(
                metadata["chunk_text_encrypted"], match.id.encode("utf-8")
            )
        else:
            content = metadata.get("chunk_text")

        if not isinstance(content, str):
            raise StoreError(f"Match {match.id} carries no chunk text.")

        if self.verify_payload_integrity:
            self._verify(match, content)

        return RetrievalResult(
            id=match.id,
            content=content,
            score=match.score,
            metadata={
                key: value
                for key, value in metadata.items()
                if key not in SANITIZED_METADATA_KEYS
            },
        )

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    async def ingest_document(self, document: Document) -> List[str]:
        """
        Segment, embed, encrypt and store a document.

        Returns
        -------
        List[str]
            Stored record identifiers (``{document_id}_chunk_{index}``), for
            the caller to keep as a reference.

        Raises
        ------
        ValidationError
            Empty content, or an embedding of the wrong dimension.

        ProviderError, StoreError
            Embedding or upsert failure. Nothing is stored in that case.
        """
        if not document.content or not document.content.strip():
            raise ValidationError(f"Document {document.id} has no content to ingest.")

        logger.info("Ingesting document %s", document.id)

        chunks = self.segmenter.segment(document.content, document.metadata)
        if not chunks:
            raise ValidationError(f"Document {document.id} produced no chunks.")
        logger.debug("Document %s segmented into %d chunks", document.id, len(chunks))

        vectors = await self.embedder.embed_batch([chunk.text for chunk in chunks])
        if len(vectors) != len(chunks):
            raise ProviderError(
                f"Provider returned {len(vectors)} embeddings for {len(chunks)} chunks."
            )

        for vector in vectors:
            self._validate_dimension(vector)

        records = [
            self._build_record(document, chunk, vector)
            for chunk, vector in zip(chunks, vectors)
        ]

        await self.store.upsert(records)

        logger.info("Stored %d encrypted chunks for document %s", len(records), document.id)
        return [record.id for record in records]

    # ------------------------------------------------------------------
    # Retrieve
    # ------------------------------------------------------------------

    async def retrieve(
        self,
        query_text: str,
        top_k: Optional[int] = None,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[RetrievalResult]:
        """
        Return the stored chunks most relevant to ``query_text``.

        Only matches scoring at or above the similarity threshold are
        returned, in the order the store ranked them.

        Parameters
        ----------
        query_text : str
            Natural-language query.

        top_k : Optional[int]
            Maximum matches requested from the store. Defaults to
            ``max_context_chunks``.

        filter : Optional[Dict[str, Any]]
            Metadata equality filter applied by the store before ranking.
        """
        if not query_text or not query_text.strip():
            raise ValidationError("Query text must not be empty.")

        k = self.max_context_chunks if top_k is None else top_k
        if k <= 0:
            raise ValidationError(f"top_k must be positive; got {k}.")

        query_vector = await self.embedder.embed(query_text)
        self._validate_dimension(query_vector)

        matches = await self.store.query(query_vector.values, k, filter)

        results = [
            self._promote(match)
            for match in matches
            if match.score >= self.similarity_threshold
        ]

        logger.debug(
            "Retrieved %d of %d matches at threshold %.2f",
            len(results),
            len(matches),
            self.similarity_threshold,
        )
        return results

    def assemble_context(self, results: Sequence[RetrievalResult]) -> str:
        return assemble_context(results)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_document(self, ids: Sequence[str]) -> None:
        """Remove a document's chunks from the store."""
        logger.debug("Deleting %d encrypted chunks", len(ids))
        await self.store.delete(list(ids))
