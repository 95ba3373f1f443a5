"""
Document Routes

This module exposes endpoints for:
- Accepting documents for encrypted ingestion
- Polling a document's ingestion status
- Deleting a document's encrypted chunks from the vector store

Ingestion is asynchronous: a 202 response means the document was accepted
and queued, not that it is searchable yet. Callers poll
``GET /documents/{id}`` for confirmation.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from .dependencies import get_audit_sink, get_ingestion_queue, get_orchestrator, get_registry
from .models import (
    DocumentAccepted,
    DocumentCreateRequest,
    DocumentStatusResponse,
    OperationResult,
)
from ..audit.sink import AuditEvent, AuditSink
from ..documents.queue import IngestionJob, IngestionQueue
from ..documents.registry import DocumentRegistry, DocumentStatus
from ..rag.models import Document
from ..rag.orchestrator import RetrievalOrchestrator

router = APIRouter(prefix="/documents", tags=["documents"])


def _to_response(doc_status: DocumentStatus) -> DocumentStatusResponse:
    return DocumentStatusResponse(
        document_id=doc_status.document_id,
        state=doc_status.state,
        chunk_count=len(doc_status.chunk_ids),
        error=doc_status.error,
        updated_at=doc_status.updated_at.isoformat(),
    )


def _require_status(registry: DocumentRegistry, document_id: str) -> DocumentStatus:
    doc_status = registry.get(document_id)
    if doc_status is None or doc_status.state == "deleted":
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown document: {document_id}",
        )
    return doc_status


# ---------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------

@router.post(
    "",
    response_model=DocumentAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a document for encrypted ingestion",
)
async def create_document(
    req: DocumentCreateRequest,
    queue: Annotated[IngestionQueue, Depends(get_ingestion_queue)],
    registry: Annotated[DocumentRegistry, Depends(get_registry)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
) -> DocumentAccepted:
    """
    Accept a document and schedule its ingestion.

    Workflow
    --------
    1. Validate the payload (empty content is rejected here).
    2. Mark the document as pending in the registry.
    3. Enqueue the ingestion job for the background worker.
    """
    if not req.content.strip():
        raise HTTPException(
            status_code=422,
            detail="Document content must not be blank.",
        )

    document = Document(
        id=req.id or str(uuid.uuid4()),
        content=req.content,
        metadata=req.metadata,
    )
    request_id = str(uuid.uuid4())

    registry.mark_pending(document.id)
    queue_size = await queue.enqueue(IngestionJob(document=document, request_id=request_id))

    await audit.record(AuditEvent(
        action="DOCUMENT_CREATED",
        resource_id=document.id,
        details={"request_id": request_id},
    ))

    return DocumentAccepted(document_id=document.id, queue_size=queue_size)


@router.get(
    "/{document_id}",
    response_model=DocumentStatusResponse,
    summary="Get a document's ingestion status",
)
async def get_document_status(
    document_id: str,
    registry: Annotated[DocumentRegistry, Depends(get_registry)],
) -> DocumentStatusResponse:
    return _to_response(_require_status(registry, document_id))


@router.delete(
    "/{document_id}",
    response_model=OperationResult,
    summary="Delete a document's encrypted chunks",
)
async def delete_document(
    document_id: str,
    registry: Annotated[DocumentRegistry, Depends(get_registry)],
    orchestrator: Annotated[RetrievalOrchestrator, Depends(get_orchestrator)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
) -> OperationResult:
    """
    Remove every stored chunk of a document.

    A store failure propagates (503) and leaves the registry untouched, so
    the delete can be retried.
    """
    doc_status = _require_status(registry, document_id)
    chunk_ids = list(doc_status.chunk_ids)

    if chunk_ids:
        await orchestrator.delete_document(chunk_ids)

    registry.mark_deleted(document_id)

    await audit.record(AuditEvent(
        action="DOCUMENT_DELETED",
        resource_id=document_id,
        details={"chunk_count": len(chunk_ids)},
    ))

    return OperationResult(status="deleted", count=len(chunk_ids))
