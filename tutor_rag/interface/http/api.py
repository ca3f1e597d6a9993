"""HTTP API for chat sessions and streamed answers.

Pure delegation to ChatService; domain errors map to HTTP statuses in one
place (the exception handlers below).
"""

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from tutor_rag.application.dto.chat_dto import (
    SendMessageRequest,
    message_to_dict,
    reply_to_dict,
    session_to_dict,
)
from tutor_rag.application.use_cases.chat_service import ChatService
from tutor_rag.application.use_cases.stream_response import CancellationToken
from tutor_rag.config.composition import Container
from tutor_rag.config.logging_config import configure_logging
from tutor_rag.domain.errors import (
    DomainError,
    PersistenceFailed,
    SessionNotFound,
    StreamFailed,
    ValidationError,
)
from tutor_rag.interface.http.sse import SSE_MEDIA_TYPE, encode_sse

logger = logging.getLogger(__name__)


class CreateSessionModel(BaseModel):
    """Request model for POST /v1/sessions."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    title: str | None = None
    document_ids: list[str] | None = Field(default=None, alias="documentIds")
    metadata: dict[str, Any] | None = None


class UpdateDocumentsModel(BaseModel):
    """Request model for PUT /v1/sessions/{id}/documents."""

    model_config = ConfigDict(populate_by_name=True)

    document_ids: list[str] = Field(alias="documentIds")


class SendMessageModel(BaseModel):
    """Request model for POST /v1/sessions/{id}/messages."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    document_ids: list[str] | None = Field(default=None, alias="documentIds")
    search_context: bool = Field(default=True, alias="searchContext")
    stream: bool = True


def _status_for(err: DomainError) -> int:
    if isinstance(err, SessionNotFound):
        return 404
    if isinstance(err, ValidationError):
        return 422
    if isinstance(err, StreamFailed):
        return 502
    if isinstance(err, PersistenceFailed):
        return 503
    return 500


async def _sse_frames(
    service: ChatService, req: SendMessageRequest, request: Request
) -> AsyncIterator[str]:
    token = CancellationToken()
    try:
        async with aclosing(service.stream_message(req, token)) as chunks:
            async for chunk in chunks:
                if await request.is_disconnected():
                    token.cancel()
                    logger.info("client disconnected from session %s", req.session_id)
                    return
                yield encode_sse(chunk)
    finally:
        # the server closes this generator when the client goes away
        token.cancel()


def create_app(container: Container | None = None) -> FastAPI:
    """Build the FastAPI app; tests pass a container with fake adapters."""
    container = container or Container()
    configure_logging(container.settings.log_level)

    app = FastAPI(title="Tutor RAG Chat API", version="1.0.0")
    app.state.container = container

    def service() -> ChatService:
        return container.get_chat_service()

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content={"error": str(exc)})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/v1/sessions", status_code=201)
    def create_session(body: CreateSessionModel) -> dict[str, Any]:
        session = service().create_session(
            body.user_id, body.title, body.document_ids, body.metadata
        )
        return session_to_dict(session)

    @app.get("/v1/sessions")
    def list_sessions(user_id: str = Query(alias="userId")) -> list[dict[str, Any]]:
        return [session_to_dict(s) for s in service().list_sessions(user_id)]

    @app.get("/v1/sessions/{session_id}")
    def get_session(session_id: str) -> dict[str, Any]:
        return session_to_dict(service().load_session(session_id))

    @app.put("/v1/sessions/{session_id}/documents")
    def update_documents(session_id: str, body: UpdateDocumentsModel) -> dict[str, Any]:
        return session_to_dict(service().update_document_context(session_id, body.document_ids))

    @app.delete("/v1/sessions/{session_id}", status_code=204)
    def delete_session(session_id: str) -> None:
        service().delete_session(session_id)

    @app.get("/v1/sessions/{session_id}/messages")
    def list_messages(session_id: str) -> list[dict[str, Any]]:
        return [message_to_dict(m) for m in service().get_messages(session_id)]

    @app.post("/v1/sessions/{session_id}/messages", response_model=None)
    async def send_message(
        session_id: str, body: SendMessageModel, request: Request
    ) -> StreamingResponse | dict[str, Any]:
        req = SendMessageRequest(
            session_id=session_id,
            message=body.message,
            document_ids=body.document_ids,
            search_context=body.search_context,
        )
        if not body.stream:
            return reply_to_dict(await service().send_message(req))
        return StreamingResponse(
            _sse_frames(service(), req, request),
            media_type=SSE_MEDIA_TYPE,
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.get("/v1/sessions/{session_id}/export")
    def export_session(
        session_id: str, fmt: str = Query(default="markdown", alias="format")
    ) -> PlainTextResponse:
        body = service().export_session(session_id, fmt)
        media_type = "application/json" if fmt == "json" else "text/markdown"
        extension = "json" if fmt == "json" else "md"
        return PlainTextResponse(
            body,
            media_type=media_type,
            headers={
                "Content-Disposition": f'attachment; filename="chat-{session_id}.{extension}"'
            },
        )

    return app


app = create_app()
