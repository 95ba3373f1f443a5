"""
Ingestion Queue & Registry Tests

Background job processing: success, failure, deletion while in flight, and
stale-chunk cleanup on re-ingestion.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from secure_rag_server.audit.sink import MemoryAuditSink
from secure_rag_server.core.errors import ProviderError, StoreError
from secure_rag_server.documents.queue import (
    IngestionJob,
    IngestionQueue,
    process_ingestion_worker,
    process_single_job,
)
from secure_rag_server.documents.registry import DocumentRegistry
from secure_rag_server.rag.models import Document
from secure_rag_server.rag.orchestrator import RetrievalOrchestrator


@pytest.fixture
def mock_orchestrator():
    mock = AsyncMock(spec=RetrievalOrchestrator)
    mock.ingest_document.return_value = ["doc_chunk_0", "doc_chunk_1"]
    return mock


@pytest.fixture
def registry():
    return DocumentRegistry()


@pytest.fixture
def audit():
    return MemoryAuditSink()


def _job(document_id: str = "doc") -> IngestionJob:
    return IngestionJob(
        document=Document(id=document_id, content="Patient has fever."),
        request_id="req-1",
    )


class TestProcessSingleJob:

    @pytest.mark.asyncio
    async def test_success_marks_indexed(self, mock_orchestrator, registry, audit):
        registry.mark_pending("doc")

        await process_single_job(_job(), mock_orchestrator, registry, audit)

        status = registry.get("doc")
        assert status.state == "indexed"
        assert status.chunk_ids == ["doc_chunk_0", "doc_chunk_1"]
        assert audit.actions() == ["DOCUMENT_ENCRYPTED"]
        assert audit.events[0].details == {"chunk_count": 2, "request_id": "req-1"}
        mock_orchestrator.delete_document.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_marks_failed_without_raising(self, mock_orchestrator, registry, audit):
        registry.mark_pending("doc")
        mock_orchestrator.ingest_document.side_effect = ProviderError("provider timed out")

        await process_single_job(_job(), mock_orchestrator, registry, audit)

        status = registry.get("doc")
        assert status.state == "failed"
        assert status.error == "ProviderError"
        assert audit.actions() == ["DOCUMENT_INGESTION_FAILED"]

    @pytest.mark.asyncio
    async def test_deleted_during_ingestion_discards_chunks(self, mock_orchestrator, registry, audit):
        registry.mark_pending("doc")

        async def ingest_then_delete(document):
            registry.mark_deleted(document.id)
            return ["doc_chunk_0"]

        mock_orchestrator.ingest_document.side_effect = ingest_then_delete

        await process_single_job(_job(), mock_orchestrator, registry, audit)

        assert registry.get("doc").state == "deleted"
        mock_orchestrator.delete_document.assert_awaited_once_with(["doc_chunk_0"])
        assert audit.actions() == []

    @pytest.mark.asyncio
    async def test_failure_after_deletion_keeps_deleted(self, mock_orchestrator, registry, audit):
        registry.mark_pending("doc")

        async def delete_then_fail(document):
            registry.mark_deleted(document.id)
            raise ProviderError("provider timed out")

        mock_orchestrator.ingest_document.side_effect = delete_then_fail

        await process_single_job(_job(), mock_orchestrator, registry, audit)

        status = registry.get("doc")
        assert status.state == "deleted"
        assert status.error is None
        assert audit.actions() == []

    @pytest.mark.asyncio
    async def test_reingestion_removes_stale_chunks(self, mock_orchestrator, registry, audit):
        registry.mark_indexed("doc", ["doc_chunk_0", "doc_chunk_1", "doc_chunk_2"])
        registry.mark_pending("doc")
        mock_orchestrator.ingest_document.return_value = ["doc_chunk_0"]

        await process_single_job(_job(), mock_orchestrator, registry, audit)

        assert registry.chunk_ids("doc") == ["doc_chunk_0"]
        mock_orchestrator.delete_document.assert_awaited_once_with(["doc_chunk_1", "doc_chunk_2"])

    @pytest.mark.asyncio
    async def test_stale_cleanup_failure_is_not_fatal(self, mock_orchestrator, registry, audit):
        registry.mark_indexed("doc", ["doc_chunk_0", "doc_chunk_9"])
        registry.mark_pending("doc")
        mock_orchestrator.ingest_document.return_value = ["doc_chunk_0"]
        mock_orchestrator.delete_document.side_effect = StoreError("down")

        await process_single_job(_job(), mock_orchestrator, registry, audit)

        assert registry.get("doc").state == "indexed"


class TestWorker:

    @pytest.mark.asyncio
    async def test_worker_drains_queue_and_survives_failures(self, mock_orchestrator, registry, audit):
        queue = IngestionQueue()

        async def ingest(document):
            if document.id == "broken":
                raise StoreError("unavailable")
            return [f"{document.id}_chunk_0"]

        mock_orchestrator.ingest_document.side_effect = ingest

        worker = asyncio.create_task(
            process_ingestion_worker(queue, mock_orchestrator, registry, audit)
        )
        try:
            for document_id in ("first", "broken", "last"):
                registry.mark_pending(document_id)
                await queue.enqueue(_job(document_id))

            await asyncio.wait_for(queue.join(), timeout=5)
        finally:
            worker.cancel()
            await asyncio.gather(worker, return_exceptions=True)

        assert registry.get("first").state == "indexed"
        assert registry.get("broken").state == "failed"
        assert registry.get("last").state == "indexed"
        assert queue.qsize() == 0

    @pytest.mark.asyncio
    async def test_enqueue_reports_queue_size(self):
        queue = IngestionQueue()

        assert await queue.enqueue(_job("a")) == 1
        assert await queue.enqueue(_job("b")) == 2

        job = await queue.get_next_job()
        assert job.document.id == "a"


class TestRegistry:

    def test_pending_keeps_previous_chunks(self, registry):
        registry.mark_indexed("doc", ["doc_chunk_0"])

        status = registry.mark_pending("doc")

        assert status.state == "pending"
        assert status.chunk_ids == ["doc_chunk_0"]

    def test_mark_deleted_unknown_document(self, registry):
        assert registry.mark_deleted("nope") is None
        assert len(registry) == 0

    def test_reads_are_copies(self, registry):
        registry.mark_indexed("doc", ["doc_chunk_0"])

        ids = registry.chunk_ids("doc")
        ids.append("injected")

        assert registry.chunk_ids("doc") == ["doc_chunk_0"]

    def test_clear_all(self, registry):
        registry.mark_pending("a")
        registry.mark_pending("b")

        registry.clear_all()

        assert len(registry) == 0
