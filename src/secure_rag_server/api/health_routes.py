from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends

from .dependencies import get_vector_store
from .models import HealthResponse
from ..vectorstore import VectorStoreAdapter

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(
    store: Annotated[VectorStoreAdapter, Depends(get_vector_store)],
) -> HealthResponse:
    store_ok = await store.health_check()
    return HealthResponse(status="ok" if store_ok else "degraded", vector_store=store_ok)


@router.get("/stats")
async def stats(
    store: Annotated[VectorStoreAdapter, Depends(get_vector_store)],
) -> Dict[str, Any]:
    return await store.get_stats()
