"""
HTTP API Tests

Document ingestion, retrieval, health, and error mapping through the
FastAPI application with pipeline dependencies overridden.
"""

import base64
import time
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from secure_rag_server.api import dependencies
from secure_rag_server.audit.sink import MemoryAuditSink
from secure_rag_server.config import settings
from secure_rag_server.core.errors import ConfigurationError, ProviderError, StoreError
from secure_rag_server.documents.registry import DocumentRegistry
from secure_rag_server.main import create_app
from secure_rag_server.rag.orchestrator import RetrievalOrchestrator
from secure_rag_server.vectorstore import QueryResult, VectorStoreAdapter


def _override(app, store, orchestrator, registry, audit):
    app.dependency_overrides[dependencies.get_vector_store] = lambda: store
    app.dependency_overrides[dependencies.get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[dependencies.get_registry] = lambda: registry
    app.dependency_overrides[dependencies.get_audit_sink] = lambda: audit


@pytest.fixture
def registry():
    return DocumentRegistry()


@pytest.fixture
def audit():
    return MemoryAuditSink()


@pytest.fixture
def orchestrator(segmenter, embedder, cipher, memory_store):
    return RetrievalOrchestrator(segmenter, embedder, cipher, memory_store)


@pytest.fixture
def client(memory_store, orchestrator, registry, audit):
    app = create_app()
    _override(app, memory_store, orchestrator, registry, audit)

    with TestClient(app) as c:
        yield c

    app.dependency_overrides = {}


def _wait_for_state(client, document_id, expected, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        resp = client.get(f"/documents/{document_id}")
        if resp.status_code == 200 and resp.json()["state"] == expected:
            return resp.json()
        time.sleep(0.02)
    raise AssertionError(f"{document_id} never reached state {expected!r}")


def _ingest(client, document_id, content, **metadata):
    resp = client.post(
        "/documents",
        json={"id": document_id, "content": content, "metadata": metadata},
    )
    assert resp.status_code == 202
    return _wait_for_state(client, document_id, "indexed")


# ---------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------

def test_create_document_is_queued(client, audit):
    resp = client.post("/documents", json={"id": "note-1", "content": "Patient has fever."})

    assert resp.status_code == 202
    data = resp.json()
    assert data["document_id"] == "note-1"
    assert data["status"] == "queued"
    assert data["queue_size"] >= 0
    assert "DOCUMENT_CREATED" in audit.actions()


def test_create_document_generates_id(client):
    resp = client.post("/documents", json={"content": "Patient has fever."})

    assert resp.status_code == 202
    assert resp.json()["document_id"]


def test_document_becomes_indexed(client, memory_store):
    status = _ingest(client, "note-1", "Patient has fever. Patient has cough.")

    assert status["chunk_count"] == 1
    assert status["error"] is None

    stats = client.get("/stats").json()
    assert stats["total_vectors"] == 1
    assert stats["total_documents"] == 1


@pytest.mark.parametrize("content", ["", "   "])
def test_blank_content_rejected(client, content):
    resp = client.post("/documents", json={"id": "x", "content": content})
    assert resp.status_code == 422


@pytest.mark.filterwarnings("error:.*HTTP_422_UNPROCESSABLE_ENTITY.*:DeprecationWarning")
def test_validation_errors_use_plain_422(client):
    document = client.post("/documents", json={"id": "x", "content": "   "})
    query = client.post("/retrieve", json={"query": "   "})

    assert document.status_code == 422
    assert query.status_code == 422
    assert query.json()["error"] == "validation_error"


def test_unknown_document_is_404(client):
    assert client.get("/documents/missing").status_code == 404
    assert client.delete("/documents/missing").status_code == 404


def test_delete_document(client, audit):
    _ingest(client, "note-1", "Patient has fever.")

    resp = client.delete("/documents/note-1")

    assert resp.status_code == 200
    assert resp.json() == {"status": "deleted", "count": 1, "details": None}
    assert client.get("/documents/note-1").status_code == 404
    assert client.get("/stats").json()["total_vectors"] == 0
    assert "DOCUMENT_DELETED" in audit.actions()


def test_failed_ingestion_is_reported(memory_store, segmenter, cipher, registry, audit):
    failing_embedder = AsyncMock()
    failing_embedder.dimension = 3
    failing_embedder.embed_batch.side_effect = ProviderError("provider down")
    orchestrator = RetrievalOrchestrator(segmenter, failing_embedder, cipher, memory_store)

    app = create_app()
    _override(app, memory_store, orchestrator, registry, audit)

    with TestClient(app) as client:
        client.post("/documents", json={"id": "note-1", "content": "Patient has fever."})
        status = _wait_for_state(client, "note-1", "failed")

    assert status["error"] == "ProviderError"
    assert "DOCUMENT_INGESTION_FAILED" in audit.actions()


# ---------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------

def test_retrieve_returns_context_and_sources(client, audit, cipher):
    _ingest(client, "note-1", "Patient has fever.", department="cardiology")

    resp = client.post("/retrieve", json={"query": "Patient has fever."})

    assert resp.status_code == 200
    data = resp.json()
    assert data["context"] == "[1] Patient has fever."
    assert [s["id"] for s in data["sources"]] == ["note-1_chunk_0"]
    assert data["sources"][0]["metadata"]["department"] == "cardiology"
    assert "encrypted_vector" not in resp.text
    assert "chunk_text" not in resp.text

    event = audit.events[-1]
    assert event.action == "CONTEXT_RETRIEVED"
    assert event.details["query_fingerprint"] == cipher.hash("Patient has fever.")
    assert "Patient has fever." not in str(event.details)


def test_retrieve_with_no_matches_returns_sentinel(client):
    resp = client.post("/retrieve", json={"query": "anything"})

    assert resp.status_code == 200
    assert resp.json() == {"context": "No relevant context found.", "sources": []}


def test_retrieve_blank_query_is_validation_error(client):
    resp = client.post("/retrieve", json={"query": "   "})

    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"


def test_retrieve_rejects_out_of_range_top_k(client):
    assert client.post("/retrieve", json={"query": "q", "top_k": 0}).status_code == 422


def _client_with_store(store, segmenter, embedder, cipher, registry, audit):
    orchestrator = RetrievalOrchestrator(segmenter, embedder, cipher, store)
    app = create_app()
    _override(app, store, orchestrator, registry, audit)
    return TestClient(app)


def test_store_outage_is_503(segmenter, embedder, cipher, registry, audit):
    store = AsyncMock(spec=VectorStoreAdapter)
    store.query.side_effect = StoreError("timeout")

    with _client_with_store(store, segmenter, embedder, cipher, registry, audit) as client:
        resp = client.post("/retrieve", json={"query": "fever"})

    assert resp.status_code == 503
    assert resp.json() == {
        "error": "vector_store_unavailable",
        "detail": "vector store unavailable",
    }


def test_tampered_record_is_integrity_failure(segmenter, embedder, cipher, registry, audit):
    raw = bytearray(base64.b64decode(cipher.encrypt_vector([0.1, 0.2, 0.3]).encode()))
    raw[-1] ^= 0x01
    store = AsyncMock(spec=VectorStoreAdapter)
    store.query.return_value = [
        QueryResult(
            id="a_chunk_0",
            score=0.95,
            metadata={
                "chunk_text": "should never be released",
                "content_hash": cipher.hash("should never be released"),
                "encrypted_vector": base64.b64encode(bytes(raw)).decode(),
            },
        )
    ]

    with _client_with_store(store, segmenter, embedder, cipher, registry, audit) as client:
        resp = client.post("/retrieve", json={"query": "fever"})

    assert resp.status_code == 500
    assert resp.json()["error"] == "integrity_failure"
    assert "should never be released" not in resp.text


# ---------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------

def test_health_ok(client):
    assert client.get("/health").json() == {"status": "ok", "vector_store": True}


def test_health_degraded(segmenter, embedder, cipher, registry, audit):
    store = AsyncMock(spec=VectorStoreAdapter)
    store.health_check.return_value = False

    with _client_with_store(store, segmenter, embedder, cipher, registry, audit) as client:
        resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "degraded", "vector_store": False}


# ---------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------

def test_missing_encryption_key_fails_startup(monkeypatch):
    monkeypatch.setattr(settings, "embedding_provider", "local")
    monkeypatch.setattr(settings, "vector_store_backend", "memory")
    monkeypatch.setattr(settings, "encryption_key_hex", None)

    for provider in (
        dependencies.get_cipher,
        dependencies.get_embedder,
        dependencies.get_vector_store,
        dependencies.get_orchestrator,
    ):
        provider.cache_clear()

    try:
        with pytest.raises(ConfigurationError, match="encryption_key_hex"):
            with TestClient(create_app()):
                pass
    finally:
        for provider in (
            dependencies.get_cipher,
            dependencies.get_embedder,
            dependencies.get_vector_store,
            dependencies.get_orchestrator,
        ):
            provider.cache_clear()
