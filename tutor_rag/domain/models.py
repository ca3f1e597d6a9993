# tutor_rag/domain/models.py
# Domain models must be pure (no I/O, no external libs)
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from tutor_rag.domain.errors import ValidationError


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class StreamState(str, Enum):
    STREAMING = "streaming"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not StreamState.STREAMING


@dataclass(frozen=True)
class SearchHit:
    """One flat, chunk-level result returned by the document search capability."""

    chunk_id: str
    document_id: str
    document_title: str
    content: str
    similarity: float
    page_number: int | None = None


@dataclass(frozen=True)
class ContextChunk:
    chunk_id: str
    content: str
    relevance_score: float
    page_number: int | None = None


@dataclass(frozen=True)
class DocumentContext:
    """
    Transient per-request aggregate of the chunks retrieved for one document.

    total_relevance_score is only used to rank documents against each other;
    it is discarded once the prompt has been assembled.
    """

    document_id: str
    document_title: str
    chunks: tuple[ContextChunk, ...]
    total_relevance_score: float


@dataclass(frozen=True)
class DocumentReference:
    """
    Read-only projection of a retrieved chunk attached to an assistant message.

    - relevance_score: similarity of the chunk to the query, always in [0, 1]
    - excerpt:         short prefix of the chunk content
    - confidence:      optional per-reference confidence (same scale)
    """

    document_id: str
    document_title: str
    chunk_id: str
    relevance_score: float
    excerpt: str
    page_number: int | None = None
    confidence: float | None = None

    def __post_init__(self) -> None:
        if not (0.0 <= self.relevance_score <= 1.0):
            raise ValidationError(
                f"relevance_score must be between 0 and 1, got {self.relevance_score}"
            )


@dataclass(frozen=True)
class Citation:
    """Span [start, end) of response text attributed to one source reference."""

    id: str
    reference: DocumentReference
    text: str
    start: int
    end: int


@dataclass(frozen=True)
class ResponseQuality:
    confidence: float
    source_relevance: float
    completeness: float
    clarity: float
    overall: float


@dataclass(frozen=True)
class ChatSession:
    id: str
    owner_id: str
    title: str
    created_at: datetime
    updated_at: datetime
    last_activity: datetime
    message_count: int = 0
    document_ids: tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ChatMessage:
    id: str
    session_id: str
    owner_id: str
    role: MessageRole
    content: str
    created_at: datetime
    document_references: tuple[DocumentReference, ...] = ()
    confidence_score: float | None = None
    processing_time_ms: int | None = None


@dataclass(frozen=True)
class PromptMessage:
    role: str  # "system" | "user" | "assistant"
    content: str


@dataclass(frozen=True)
class ModelRequest:
    """Ordered messages sent to the model provider for one turn."""

    messages: tuple[PromptMessage, ...]

    @property
    def prompt(self) -> str:
        """Content of the final user turn (the possibly context-wrapped question)."""
        return self.messages[-1].content if self.messages else ""

    def render(self) -> str:
        return "\n\n".join(f"[{m.role}]\n{m.content}" for m in self.messages)
