"""
Retrieval Routes

Semantic retrieval over the encrypted index. The response carries the
assembled context string (the only artifact meant for a response generator)
and per-source attribution. Neither contains vectors or encrypted payloads.
"""

from fastapi import APIRouter, Depends, Request, status
from typing import Annotated

from .cancellation import run_until_disconnect
from .dependencies import get_audit_sink, get_orchestrator
from .models import RetrieveRequest, RetrieveResponse, SourceResult
from ..audit.sink import AuditEvent, AuditSink
from ..rag.orchestrator import RetrievalOrchestrator

router = APIRouter(tags=["retrieval"])


@router.post(
    "/retrieve",
    response_model=RetrieveResponse,
    summary="Retrieve context for a query",
    status_code=status.HTTP_200_OK,
)
async def retrieve(
    req: RetrieveRequest,
    request: Request,
    orchestrator: Annotated[RetrievalOrchestrator, Depends(get_orchestrator)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
) -> RetrieveResponse:
    """
    Embed the query, search, filter by threshold and assemble context.

    The pipeline is cancelled if the client disconnects before it finishes.
    Pipeline errors are translated by the global exception handlers.
    """
    results = await run_until_disconnect(
        request,
        orchestrator.retrieve(req.query, top_k=req.top_k, filter=req.filter),
    )

    await audit.record(AuditEvent(
        action="CONTEXT_RETRIEVED",
        details={
            "query_fingerprint": orchestrator.cipher.hash(req.query),
            "context_chunks": len(results),
            "sources": [{"id": r.id, "score": r.score} for r in results],
        },
    ))

    return RetrieveResponse(
        context=orchestrator.assemble_context(results),
        sources=[
            SourceResult(id=r.id, score=r.score, metadata=dict(r.metadata))
            for r in results
        ],
    )
