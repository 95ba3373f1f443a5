"""
Client-disconnect cancellation.

Starlette keeps running a handler after its client goes away. For retrieval
that would mean finishing embedding and store calls only to discard the
result, so the pipeline and a disconnect watcher run side by side in one
anyio task group. Whichever finishes first cancels the group's scope.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Dict, TypeVar

import anyio
from fastapi import HTTPException, Request

logger = logging.getLogger("rag.app")

T = TypeVar("T")

# Status code nginx uses for "client closed request".
CLIENT_CLOSED_REQUEST = 499


async def run_until_disconnect(
    request: Request,
    work: Awaitable[T],
    poll_interval: float = 0.1,
) -> T:
    """
    Await ``work`` unless the client disconnects first.

    Errors raised by ``work`` propagate unchanged.

    Raises
    ------
    HTTPException(499)
        If the client went away; ``work`` has been cancelled by then.
    """
    outcome: Dict[str, Any] = {}

    async def run_work(scope: anyio.CancelScope) -> None:
        try:
            outcome["result"] = await work
        except Exception as exc:
            # Kept out of the task group so callers never see an ExceptionGroup.
            outcome["error"] = exc
        finally:
            scope.cancel()

    async def watch(scope: anyio.CancelScope) -> None:
        while not await request.is_disconnected():
            await anyio.sleep(poll_interval)
        scope.cancel()

    async with anyio.create_task_group() as tg:
        tg.start_soon(run_work, tg.cancel_scope)
        tg.start_soon(watch, tg.cancel_scope)

    if "result" in outcome:
        return outcome["result"]
    if "error" in outcome:
        raise outcome["error"]

    if asyncio.iscoroutine(work):
        work.close()

    logger.info("Client disconnected; in-flight retrieval cancelled")
    raise HTTPException(status_code=CLIENT_CLOSED_REQUEST, detail="Client closed request.")
