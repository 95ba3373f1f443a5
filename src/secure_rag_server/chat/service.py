"""
Chat Service: Retrieval-Grounded Responses

This module connects the retrieval pipeline to a response generator. The
generator (the language-model call) is an external collaborator supplied by
the embedding application; this service only guarantees what it is given:
the assembled context string, the conversation history and the question.

Major Responsibilities
----------------------
1. Retrieve relevant chunks and assemble the context string.
2. Build the generator's message list (system prompt + recent history + the
   user question).
3. Return the generated answer with per-source attribution, or stream it
   through a bounded channel.
4. Report each interaction to the audit sink.

A retrieval failure fails the call; no answer is ever generated from an
incomplete context.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Protocol, Sequence

from pydantic import BaseModel, Field, ConfigDict

from ..audit.sink import AuditEvent, AuditSink
from ..rag.models import RetrievalResult
from ..rag.orchestrator import RetrievalOrchestrator

logger = logging.getLogger("rag.chat")


SYSTEM_PROMPT_TEMPLATE = """You are a careful assistant answering questions about confidential records. Use the following context to answer the user's question. If the context doesn't contain relevant information, say so.

Context:
{context}

Rules:
- Only use information from the provided context
- Be accurate and concise
- If uncertain, acknowledge limitations
- Maintain confidentiality"""

HISTORY_WINDOW = 5

_END_OF_STREAM = object()


# ---------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------

class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class SourceAttribution(BaseModel):
    id: str
    score: float
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class ChatAnswer(BaseModel):
    message: str
    sources: List[SourceAttribution] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class ResponseGenerator(Protocol):
    """The language-model collaborator."""

    async def generate(self, messages: List[ChatMessage]) -> str:
        ...

    def stream(self, messages: List[ChatMessage]) -> AsyncIterator[str]:
        ...


# ---------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------

def build_messages(
    context: str,
    question: str,
    history: Sequence[ChatMessage] = (),
) -> List[ChatMessage]:
    system = ChatMessage(role="system", content=SYSTEM_PROMPT_TEMPLATE.format(context=context))
    recent = list(history)[-HISTORY_WINDOW:]
    return [system, *recent, ChatMessage(role="user", content=question)]


def source_attributions(results: Sequence[RetrievalResult]) -> List[SourceAttribution]:
    return [
        SourceAttribution(id=r.id, score=r.score, metadata=dict(r.metadata))
        for r in results
    ]


# ---------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------

class ChatService:

    def __init__(
        self,
        orchestrator: RetrievalOrchestrator,
        generator: ResponseGenerator,
        audit: AuditSink,
    ) -> None:
        self.orchestrator = orchestrator
        self.generator = generator
        self.audit = audit

    async def _prepare(
        self,
        question: str,
        history: Sequence[ChatMessage],
    ) -> tuple[List[RetrievalResult], List[ChatMessage]]:
        results = await self.orchestrator.retrieve(question)
        context = self.orchestrator.assemble_context(results)
        return results, build_messages(context, question, history)

    async def _audit(self, action: str, question: str, results: Sequence[RetrievalResult]) -> None:
        await self.audit.record(AuditEvent(
            action=action,
            details={
                "query_fingerprint": self.orchestrator.cipher.hash(question),
                "context_chunks": len(results),
                "sources": [{"id": r.id, "score": r.score} for r in results],
            },
        ))

    async def answer(
        self,
        question: str,
        history: Sequence[ChatMessage] = (),
    ) -> ChatAnswer:
        """
        Retrieve context, generate a complete answer, and attribute sources.
        """
        results, messages = await self._prepare(question, history)
        message = await self.generator.generate(messages)

        await self._audit("CHAT_MESSAGE", question, results)

        return ChatAnswer(message=message, sources=source_attributions(results))

    async def stream(
        self,
        question: str,
        history: Sequence[ChatMessage] = (),
        max_buffered: int = 32,
    ) -> AsyncIterator[str]:
        """
        Stream an answer through a bounded channel.

        A producer task pulls fragments from the generator and pushes them
        onto an ``asyncio.Queue`` of at most ``max_buffered`` items; this
        generator drains it. When the consumer stops early (closes the
        iterator, or its task is cancelled) the producer task is cancelled,
        which stops the upstream generation call.
        """
        results, messages = await self._prepare(question, history)

        channel: asyncio.Queue[Any] = asyncio.Queue(maxsize=max_buffered)

        async def produce() -> None:
            try:
                async for fragment in self.generator.stream(messages):
                    if fragment:
                        await channel.put(fragment)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                await channel.put(exc)
                return
            await channel.put(_END_OF_STREAM)

        producer = asyncio.create_task(produce())
        completed = False

        try:
            while True:
                item = await channel.get()
                if item is _END_OF_STREAM:
                    completed = True
                    break
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            if not producer.done():
                producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)
            if not completed:
                logger.info("Chat stream closed before completion; generation cancelled")

        await self._audit("CHAT_STREAM", question, results)
