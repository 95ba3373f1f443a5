"""
Vector Store Package

Adapter contract for the external similarity-search service plus its HTTP
and in-memory FAISS implementations.
"""

from .base import VectorStoreAdapter
from .models import VectorRecord, QueryResult, chunk_record_id
from .http_store import HttpVectorStore
from .faiss_store import FaissVectorStore
from .factory import create_vector_store

__all__ = [
    "VectorStoreAdapter",
    "VectorRecord",
    "QueryResult",
    "chunk_record_id",
    "HttpVectorStore",
    "FaissVectorStore",
    "create_vector_store",
]
