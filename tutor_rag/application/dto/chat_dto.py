# tutor_rag/application/dto/chat_dto.py
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from tutor_rag.domain.models import (
    ChatMessage,
    ChatSession,
    Citation,
    DocumentReference,
    ResponseQuality,
)


@dataclass(frozen=True)
class SendMessageRequest:
    """
    DTO for one chat turn.

    - session_id:     target session (must exist)
    - message:        user message (non-empty)
    - document_ids:   optional retrieval scope overriding the session's scope
    - search_context: when False, no document retrieval is performed
    """

    session_id: str
    message: str
    document_ids: Sequence[str] | None = None
    search_context: bool = True


@dataclass(frozen=True)
class ResponseChunk:
    """One unit of the outbound streaming protocol.

    Exactly one chunk per request has is_complete=True: either the final
    answer (full content, sources, citations, confidence) or a terminal error.
    """

    content: str
    is_complete: bool
    sources: tuple[DocumentReference, ...] | None = None
    citations: tuple[Citation, ...] | None = None
    confidence: float | None = None
    error: str | None = None
    quality: ResponseQuality | None = field(default=None, compare=False)

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"content": self.content, "isComplete": self.is_complete}
        if self.sources is not None:
            payload["sources"] = [reference_to_dict(s) for s in self.sources]
        if self.citations is not None:
            payload["citations"] = [citation_to_dict(c) for c in self.citations]
        if self.confidence is not None:
            payload["confidence"] = self.confidence
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class ChatReply:
    """Complete, non-streamed answer for one turn."""

    session_id: str
    content: str
    sources: list[DocumentReference]
    citations: list[Citation]
    confidence: float
    processing_time_ms: int
    search_query: str
    search_results: int


def reference_to_dict(ref: DocumentReference) -> dict[str, Any]:
    return {
        "documentId": ref.document_id,
        "documentTitle": ref.document_title,
        "chunkId": ref.chunk_id,
        "pageNumber": ref.page_number,
        "relevanceScore": ref.relevance_score,
        "excerpt": ref.excerpt,
        "confidence": ref.confidence,
    }


def reference_from_dict(data: dict[str, Any]) -> DocumentReference:
    return DocumentReference(
        document_id=data["documentId"],
        document_title=data.get("documentTitle", ""),
        chunk_id=data["chunkId"],
        page_number=data.get("pageNumber"),
        relevance_score=float(data["relevanceScore"]),
        excerpt=data.get("excerpt", ""),
        confidence=data.get("confidence"),
    )


def citation_to_dict(citation: Citation) -> dict[str, Any]:
    return {
        "id": citation.id,
        "documentReference": reference_to_dict(citation.reference),
        "citationText": citation.text,
        "position": {"start": citation.start, "end": citation.end},
    }


def session_to_dict(session: ChatSession) -> dict[str, Any]:
    return {
        "id": session.id,
        "userId": session.owner_id,
        "title": session.title,
        "createdAt": session.created_at.isoformat(),
        "updatedAt": session.updated_at.isoformat(),
        "messageCount": session.message_count,
        "lastActivity": session.last_activity.isoformat(),
        "documentContext": list(session.document_ids),
        "metadata": dict(session.metadata),
    }


def message_to_dict(message: ChatMessage) -> dict[str, Any]:
    return {
        "id": message.id,
        "userId": message.owner_id,
        "sessionId": message.session_id,
        "message": message.content,
        "role": message.role.value,
        "documentReferences": [reference_to_dict(r) for r in message.document_references],
        "confidenceScore": message.confidence_score,
        "processingTimeMs": message.processing_time_ms,
        "createdAt": message.created_at.isoformat(),
    }


def reply_to_dict(reply: ChatReply) -> dict[str, Any]:
    return {
        "sessionId": reply.session_id,
        "response": reply.content,
        "sources": [reference_to_dict(s) for s in reply.sources],
        "citations": [citation_to_dict(c) for c in reply.citations],
        "confidence": reply.confidence,
        "processingTimeMs": reply.processing_time_ms,
        "searchQuery": reply.search_query,
        "searchResults": reply.search_results,
    }
