"""
Async queue for background document ingestion.

Accepting a document and indexing it are decoupled: the API enqueues a job
and returns immediately, and a detached worker task runs the ingest pipeline.
The worker's error channel is the registry (status ``failed``), the log, and
the audit sink; a failed job never stops the worker.
"""

import asyncio
import logging
from dataclasses import dataclass

from .registry import DocumentRegistry
from ..audit.sink import AuditEvent, AuditSink
from ..core.errors import StoreError
from ..rag.models import Document
from ..rag.orchestrator import RetrievalOrchestrator

logger = logging.getLogger("rag.ingestion")


@dataclass
class IngestionJob:
    """Represents a request to ingest one document."""
    document: Document

    # Metadata for tracing
    request_id: str = "unknown"


class IngestionQueue:
    """FIFO of pending ingestion jobs."""

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue[IngestionJob] = asyncio.Queue(maxsize=maxsize)

    async def enqueue(self, job: IngestionJob) -> int:
        """Add a job to the queue. Returns current queue size."""
        await self._queue.put(job)
        qsize = self._queue.qsize()
        logger.info("Job enqueued: %s (queue size: %d)", job.document.id, qsize)
        return qsize

    async def get_next_job(self) -> IngestionJob:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()

    def qsize(self) -> int:
        return self._queue.qsize()


async def process_ingestion_worker(
    queue: IngestionQueue,
    orchestrator: RetrievalOrchestrator,
    registry: DocumentRegistry,
    audit: AuditSink,
) -> None:
    """
    Background worker that consumes jobs from the queue until cancelled.
    """
    logger.info("Ingestion worker started.")

    while True:
        try:
            job = await queue.get_next_job()
        except asyncio.CancelledError:
            logger.info("Ingestion worker cancelled.")
            break

        try:
            logger.info("Processing ingestion job: %s (%s)", job.document.id, job.request_id)
            await process_single_job(job, orchestrator, registry, audit)
        except asyncio.CancelledError:
            logger.info("Ingestion worker cancelled.")
            break
        except Exception:
            logger.exception("Unexpected error in ingestion worker")
        finally:
            queue.task_done()


async def process_single_job(
    job: IngestionJob,
    orchestrator: RetrievalOrchestrator,
    registry: DocumentRegistry,
    audit: AuditSink,
) -> None:
    """
    Ingest one document and record the outcome.

    Pipeline failures are recorded and reported, not raised: the caller that
    created the document has already been told it was accepted.
    """
    document_id = job.document.id
    previous_ids = set(registry.chunk_ids(document_id))

    try:
        chunk_ids = await orchestrator.ingest_document(job.document)
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        error = type(exc).__name__
        current = registry.get(document_id)
        if current is not None and current.state == "deleted":
            logger.info(
                "Document %s was deleted during ingestion; ignoring %s", document_id, error
            )
            return
        registry.mark_failed(document_id, error)
        logger.error("Failed to ingest document %s: %s", document_id, error, exc_info=exc)
        await audit.record(AuditEvent(
            action="DOCUMENT_INGESTION_FAILED",
            resource_id=document_id,
            details={"error": error, "request_id": job.request_id},
        ))
        return

    current = registry.get(document_id)
    if current is not None and current.state == "deleted":
        # Deleted while the job was in flight: do not resurrect it.
        logger.info("Document %s was deleted during ingestion; discarding chunks", document_id)
        await orchestrator.delete_document(chunk_ids)
        return

    registry.mark_indexed(document_id, chunk_ids)
    await audit.record(AuditEvent(
        action="DOCUMENT_ENCRYPTED",
        resource_id=document_id,
        details={"chunk_count": len(chunk_ids), "request_id": job.request_id},
    ))

    stale = sorted(previous_ids - set(chunk_ids))
    if stale:
        try:
            await orchestrator.delete_document(stale)
        except StoreError:
            logger.warning(
                "Could not remove %d stale chunks for document %s",
                len(stale),
                document_id,
                exc_info=True,
            )
