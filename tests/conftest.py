import hashlib
from typing import Dict, List, Optional

import pytest
from pydantic import SecretStr

from secure_rag_server.chunking.segmenter import Segmenter
from secure_rag_server.embeddings.models import EmbeddingVector
from secure_rag_server.embeddings.provider import EmbeddingProvider
from secure_rag_server.security.cipher import EncryptionConfig, VectorCipher
from secure_rag_server.vectorstore import FaissVectorStore

# Test key: 256 bits of zeros. Never use outside tests.
TEST_KEY_HEX = "00" * 32
TEST_DIMENSION = 3


def hashed_vector(text: str, dimension: int = TEST_DIMENSION) -> List[float]:
    """Deterministic, strictly positive pseudo-embedding for ``text``."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [digest[i] / 255.0 + 0.01 for i in range(dimension)]


class StaticEmbedder(EmbeddingProvider):
    """
    Offline embedding provider.

    Returns the vector registered for a text, or a hash-derived one.
    """

    def __init__(
        self,
        dimension: int = TEST_DIMENSION,
        vectors: Optional[Dict[str, List[float]]] = None,
        max_concurrency: int = 10,
    ):
        super().__init__(
            model="test-embedding-model",
            dimension=dimension,
            max_concurrency=max_concurrency,
        )
        self.vectors = dict(vectors or {})
        self.calls: List[str] = []

    async def embed(self, text: str) -> EmbeddingVector:
        self.calls.append(text)
        values = self.vectors.get(text) or hashed_vector(text, self.dimension)
        return EmbeddingVector(values=values, model=self.model, usage=len(text.split()))


@pytest.fixture
def cipher():
    return VectorCipher(EncryptionConfig(key_hex=SecretStr(TEST_KEY_HEX)))


@pytest.fixture
def embedder():
    return StaticEmbedder()


@pytest.fixture
def segmenter():
    return Segmenter(chunk_size=500, chunk_overlap=50)


@pytest.fixture
def memory_store():
    return FaissVectorStore(dimension=TEST_DIMENSION, metric="cosine", index_name="test-index")
