"""
Error Taxonomy & Global Error Handling

This module defines the exception hierarchy shared by every pipeline
component, and the FastAPI exception handlers that translate those exceptions
into HTTP responses.

Design Goals
------------
- Never leak internal exception details (or document content) to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
- Keep tampering (IntegrityError) distinguishable from plain corruption
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger("rag.errors")


# ---------------------------------------------------------------------
# Exception Hierarchy
# ---------------------------------------------------------------------

class SecureRAGError(RuntimeError):
    """Base class for all pipeline errors."""


class ConfigurationError(SecureRAGError):
    """Missing or malformed configuration. Fatal at startup, never retried."""


class ProviderError(SecureRAGError):
    """An embedding provider call failed, timed out, or returned garbage."""


class StoreError(SecureRAGError):
    """The vector store is unavailable, timed out, or answered non-2xx."""


class IntegrityError(SecureRAGError):
    """Authentication tag verification failed on decrypt."""


class PayloadFormatError(SecureRAGError):
    """An encrypted payload could not be decoded (not a tag failure)."""


class ValidationError(SecureRAGError):
    """Input rejected before any network or crypto call was made."""


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

_STATUS_BY_ERROR = (
    (ValidationError, 422, "validation_error"),
    (ProviderError, status.HTTP_503_SERVICE_UNAVAILABLE, "embedding_provider_unavailable"),
    (StoreError, status.HTTP_503_SERVICE_UNAVAILABLE, "vector_store_unavailable"),
    (IntegrityError, status.HTTP_500_INTERNAL_SERVER_ERROR, "integrity_failure"),
)


def _classify(exc: SecureRAGError) -> tuple[int, str]:
    for error_type, status_code, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code, code
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "pipeline_error"


async def pipeline_exception_handler(
    request: Request,
    exc: SecureRAGError,
) -> JSONResponse:
    """
    Handler for errors raised by the retrieval pipeline.

    Behavior
    --------
    - Logs the exception type and traceback internally.
    - Maps the error class onto a status code and a stable error code.
    - Validation errors carry their message (it never contains document
      content); every other class returns a fixed detail string.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : SecureRAGError
        The pipeline exception.

    Returns
    -------
    JSONResponse
        A JSON response with a minimal error payload.
    """
    status_code, code = _classify(exc)

    if isinstance(exc, IntegrityError):
        # Possible tampering: always log at error level with the full trace.
        logger.error(
            "Integrity failure during request: %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
    else:
        logger.warning(
            "Pipeline error during request %s %s: %s",
            request.method,
            request.url.path,
            type(exc).__name__,
            exc_info=exc,
        )

    detail = str(exc) if isinstance(exc, ValidationError) else code.replace("_", " ")

    payload: Dict[str, Any] = {
        "error": code,
        "detail": detail,
    }

    return JSONResponse(
        status_code=status_code,
        content=payload,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Registered as the final safety net for any exception not otherwise
    handled. Logs the full stack trace and returns a generic 500.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
