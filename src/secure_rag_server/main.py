"""
Secure RAG Server Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling and logging, and owns the lifecycle of
the background ingestion worker.

Design Goals
------------
- Deterministic startup
- Fail fast on bad configuration (missing or malformed encryption key,
  unsupported provider) before the first request is served
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Callable, TypeVar

from fastapi import FastAPI

from .config import settings
from .core.errors import (
    SecureRAGError,
    pipeline_exception_handler,
    unhandled_exception_handler,
)
from .documents.queue import IngestionQueue, process_ingestion_worker

from .api import (
    dependencies,
    document_routes,
    health_routes,
    retrieval_routes,
)


logger = logging.getLogger("rag.app")

T = TypeVar("T")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _resolve(app: FastAPI, provider: Callable[[], T]) -> T:
    """Call a dependency provider, honouring test overrides."""
    return app.dependency_overrides.get(provider, provider)()


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Validate configuration, then run the ingestion worker for the lifetime
    of the application.
    """
    logger.info("Starting secure-rag-server")

    # Build the pipeline now so configuration errors surface at startup.
    orchestrator = _resolve(app, dependencies.get_orchestrator)
    registry = _resolve(app, dependencies.get_registry)
    audit = _resolve(app, dependencies.get_audit_sink)

    logger.info("Configuration validated successfully")

    queue = IngestionQueue()
    app.state.ingestion_queue = queue
    worker = asyncio.create_task(
        process_ingestion_worker(queue, orchestrator, registry, audit),
        name="ingestion-worker",
    )

    try:
        yield
    finally:
        logger.info("Shutting down secure-rag-server")
        worker.cancel()
        await asyncio.gather(worker, return_exceptions=True)
        await orchestrator.store.close()


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    configure_logging(settings.log_level)

    app = FastAPI(
        title="secure-rag-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(SecureRAGError, pipeline_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(document_routes.router)
    app.include_router(retrieval_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
