"""Chat orchestration: retrieval, prompt assembly, streaming, persistence.

Constructor-injected so tests can supply fake search, model and storage
ports; there is no module-level instance.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

from tutor_rag.application.dto.chat_dto import (
    ChatReply,
    ResponseChunk,
    SendMessageRequest,
    message_to_dict,
    session_to_dict,
)
from tutor_rag.application.ports.chat_model_port import ChatModelPort
from tutor_rag.application.ports.clock_port import ClockPort
from tutor_rag.application.ports.telemetry_port import REQUEST_LATENCY_MS, TelemetryPort
from tutor_rag.application.use_cases.chat_session_store import ChatSessionStore
from tutor_rag.application.use_cases.retrieve_document_context import (
    DEFAULT_MAX_RESULTS,
    DEFAULT_MIN_SIMILARITY,
    DocumentContextRetriever,
)
from tutor_rag.application.use_cases.stream_response import (
    CancellationToken,
    StreamingResponseConsumer,
)
from tutor_rag.domain.errors import DomainError, StreamFailed, ValidationError
from tutor_rag.domain.models import ChatMessage, ChatSession, DocumentContext, MessageRole
from tutor_rag.domain.services.prompting import assemble_prompt
from tutor_rag.domain.services.ranking import to_references
from tutor_rag.domain.services.transcript import render_markdown

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI tutor. Provide accurate, helpful responses based on the context provided."
)
EXPORT_FORMATS = ("json", "markdown")


@dataclass(frozen=True)
class ChatOptions:
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_results: int = DEFAULT_MAX_RESULTS
    min_similarity: float = DEFAULT_MIN_SIMILARITY
    stream_idle_timeout_s: float = 30.0


class ChatService:
    def __init__(
        self,
        retriever: DocumentContextRetriever,
        store: ChatSessionStore,
        model: ChatModelPort,
        clock: ClockPort,
        telemetry: TelemetryPort | None = None,
        options: ChatOptions | None = None,
    ) -> None:
        self.retriever = retriever
        self.store = store
        self.model = model
        self.clock = clock
        self.telemetry = telemetry
        self.options = options or ChatOptions()

    # ===== Chat turns =====

    async def stream_message(
        self, req: SendMessageRequest, cancel: CancellationToken | None = None
    ) -> AsyncIterator[ResponseChunk]:
        """Stream one chat turn.

        Yields delta chunks, then exactly one terminal chunk (the final answer
        or an error) unless the caller cancels first. The turn is persisted
        before the final answer chunk is yielded; failed and cancelled turns
        are not persisted.
        """
        started = self.clock.monotonic()

        if not req.message or not req.message.strip():
            yield self._error_chunk(ValidationError("message must not be empty"))
            return
        try:
            session = await asyncio.to_thread(self.store.load_session, req.session_id)
            history = await asyncio.to_thread(self.store.get_messages, req.session_id)
        except DomainError as ex:
            yield self._error_chunk(ex)
            return

        user_message = self.store.new_message(session, MessageRole.USER, req.message)
        contexts = await self._retrieve(req, session)
        request = assemble_prompt(req.message, contexts, history, self.options.system_prompt)
        sources = to_references(contexts)

        consumer = StreamingResponseConsumer(
            self.model, idle_timeout_s=self.options.stream_idle_timeout_s, telemetry=self.telemetry
        )
        # closing the consumer releases the model stream as soon as our caller stops
        async with aclosing(consumer.consume(request, sources, cancel)) as chunks:
            async for chunk in chunks:
                if chunk.is_complete and not chunk.failed:
                    elapsed_ms = self.clock.elapsed_ms(started)
                    assistant_message = self.store.new_message(
                        session,
                        MessageRole.ASSISTANT,
                        chunk.content,
                        document_references=sources,
                        confidence_score=chunk.confidence,
                        processing_time_ms=elapsed_ms,
                    )
                    await asyncio.to_thread(self.store.save_turn, user_message, assistant_message)
                    self._observe(REQUEST_LATENCY_MS, float(elapsed_ms), {"status": "complete"})
                yield chunk

    async def send_message(self, req: SendMessageRequest) -> ChatReply:
        """Non-streaming turn: drain the stream and return the final answer."""
        started = self.clock.monotonic()
        final: ResponseChunk | None = None
        async for chunk in self.stream_message(req):
            if chunk.is_complete:
                final = chunk
        if final is None or final.failed:
            raise StreamFailed(
                final.error if final is not None else "stream ended without an answer"
            )
        sources = list(final.sources or ())
        return ChatReply(
            session_id=req.session_id,
            content=final.content,
            sources=sources,
            citations=list(final.citations or ()),
            confidence=final.confidence if final.confidence is not None else 0.0,
            processing_time_ms=self.clock.elapsed_ms(started),
            search_query=req.message,
            search_results=len({s.document_id for s in sources}),
        )

    async def _retrieve(
        self, req: SendMessageRequest, session: ChatSession
    ) -> list[DocumentContext]:
        if not req.search_context:
            return []
        scope = session.document_ids if req.document_ids is None else tuple(req.document_ids)
        return await self.retriever.retrieve(
            req.message,
            scope,
            max_results=self.options.max_results,
            min_similarity=self.options.min_similarity,
        )

    def _error_chunk(self, err: DomainError) -> ResponseChunk:
        logger.warning("chat turn rejected: %s", err)
        return ResponseChunk(content="", is_complete=True, error=str(err))

    def _observe(self, name: str, value: float, tags: dict[str, Any]) -> None:
        if self.telemetry is not None:
            self.telemetry.observe(name, value, tags)

    # ===== Sessions =====

    def create_session(
        self,
        owner_id: str,
        title: str | None = None,
        document_ids: Sequence[str] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ChatSession:
        return self.store.create_session(owner_id, title, document_ids, metadata)

    def load_session(self, session_id: str) -> ChatSession:
        return self.store.load_session(session_id)

    def list_sessions(self, owner_id: str) -> list[ChatSession]:
        return self.store.list_sessions(owner_id)

    def get_messages(self, session_id: str) -> list[ChatMessage]:
        self.store.load_session(session_id)
        return self.store.get_messages(session_id)

    def update_document_context(self, session_id: str, document_ids: Sequence[str]) -> ChatSession:
        return self.store.update_document_context(session_id, document_ids)

    def delete_session(self, session_id: str) -> None:
        self.store.delete_session(session_id)

    def export_session(self, session_id: str, fmt: str = "markdown") -> str:
        """Export a transcript as "json" or "markdown"."""
        if fmt not in EXPORT_FORMATS:
            raise ValidationError(f"export format {fmt!r} not supported")
        session = self.store.load_session(session_id)
        messages = self.store.get_messages(session_id)
        if fmt == "markdown":
            return render_markdown(session, messages)
        return json.dumps(
            {
                "session": session_to_dict(session),
                "messages": [message_to_dict(m) for m in messages],
                "exportedAt": self.clock.now().isoformat(),
            },
            indent=2,
        )
