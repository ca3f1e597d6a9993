# tutor_rag/application/use_cases/chat_session_store.py
from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Any

from tutor_rag.application.ports.clock_port import ClockPort
from tutor_rag.application.ports.session_repository_port import SessionRepositoryPort
from tutor_rag.application.ports.telemetry_port import PERSISTENCE_FAILED, TelemetryPort
from tutor_rag.domain.errors import PersistenceFailed, SessionNotFound, ValidationError
from tutor_rag.domain.models import ChatMessage, ChatSession, DocumentReference, MessageRole

logger = logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 512


class MessageCache:
    """Bounded LRU cache of persisted messages keyed by message id.

    Read-mostly and never the source of truth: a miss always falls back to
    the repository. Thread-safe because repository calls run in worker threads.
    """

    def __init__(self, max_size: int = DEFAULT_CACHE_SIZE) -> None:
        if max_size < 0:
            raise ValidationError("cache size must be >= 0")
        self.max_size = max_size
        self._items: OrderedDict[str, ChatMessage] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def get(self, message_id: str) -> ChatMessage | None:
        with self._lock:
            msg = self._items.get(message_id)
            if msg is not None:
                self._items.move_to_end(message_id)
            return msg

    def put(self, message: ChatMessage) -> None:
        if self.max_size == 0:
            return
        with self._lock:
            self._items[message.id] = message
            self._items.move_to_end(message.id)
            while len(self._items) > self.max_size:
                self._items.popitem(last=False)

    def evict_session(self, session_id: str) -> None:
        with self._lock:
            stale = [k for k, m in self._items.items() if m.session_id == session_id]
            for key in stale:
                del self._items[key]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


class ChatSessionStore:
    """
    Owns session and message persistence on top of a SessionRepositoryPort.

    Read/update operations raise domain errors to the caller. save_turn is
    the exception: it runs after the answer has been streamed, so failures
    are logged and reported through its return value only.
    """

    def __init__(
        self,
        repository: SessionRepositoryPort,
        clock: ClockPort,
        telemetry: TelemetryPort | None = None,
        cache_size: int = DEFAULT_CACHE_SIZE,
    ) -> None:
        self.repository = repository
        self.clock = clock
        self.telemetry = telemetry
        self.cache = MessageCache(cache_size)

    # ===== Sessions =====

    def create_session(
        self,
        owner_id: str,
        title: str | None = None,
        document_ids: Sequence[str] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ChatSession:
        if not owner_id or not owner_id.strip():
            raise ValidationError("owner_id must not be empty")
        now = self.clock.now()
        session = ChatSession(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            title=title or f"Chat {now:%Y-%m-%d}",
            created_at=now,
            updated_at=now,
            last_activity=now,
            message_count=0,
            document_ids=tuple(document_ids or ()),
            metadata=dict(metadata or {}),
        )
        self.repository.add_session(session).unwrap()
        logger.info("created chat session %s for owner %s", session.id, owner_id)
        return session

    def load_session(self, session_id: str) -> ChatSession:
        session = self.repository.get_session(session_id).unwrap()
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def list_sessions(self, owner_id: str) -> list[ChatSession]:
        return self.repository.list_sessions(owner_id).unwrap() or []

    def update_document_context(
        self, session_id: str, document_ids: Sequence[str]
    ) -> ChatSession:
        """Replace the retrieval scope used by subsequent turns.

        References on already persisted messages are not touched.
        """
        session = self.load_session(session_id)
        updated = replace(session, document_ids=tuple(document_ids), updated_at=self.clock.now())
        self.repository.update_session(updated).unwrap()
        return updated

    def delete_session(self, session_id: str) -> None:
        self.load_session(session_id)
        self.repository.delete_session(session_id).unwrap()
        self.cache.evict_session(session_id)
        logger.info("deleted chat session %s", session_id)

    # ===== Messages =====

    def new_message(
        self,
        session: ChatSession,
        role: MessageRole,
        content: str,
        document_references: Sequence[DocumentReference] = (),
        confidence_score: float | None = None,
        processing_time_ms: int | None = None,
    ) -> ChatMessage:
        return ChatMessage(
            id=str(uuid.uuid4()),
            session_id=session.id,
            owner_id=session.owner_id,
            role=role,
            content=content,
            created_at=self.clock.now(),
            document_references=tuple(document_references),
            confidence_score=confidence_score,
            processing_time_ms=processing_time_ms,
        )

    def get_messages(self, session_id: str) -> list[ChatMessage]:
        messages = self.repository.list_messages(session_id).unwrap() or []
        for msg in messages:
            self.cache.put(msg)
        return messages

    def get_message(self, message_id: str) -> ChatMessage | None:
        cached = self.cache.get(message_id)
        if cached is not None:
            return cached
        msg = self.repository.get_message(message_id).unwrap()
        if msg is not None:
            self.cache.put(msg)
        return msg

    def save_turn(self, user_message: ChatMessage, assistant_message: ChatMessage) -> bool:
        """Persist one exchange and bump the session's counters.

        Returns:
            True if both messages and the session update were stored.
        """
        try:
            if user_message.session_id != assistant_message.session_id:
                raise ValidationError("turn messages belong to different sessions")
            self.repository.add_messages([user_message, assistant_message]).unwrap()
            for msg in (user_message, assistant_message):
                self.cache.put(msg)

            session = self.load_session(user_message.session_id)
            self.repository.update_session(
                replace(
                    session,
                    message_count=session.message_count + 2,
                    last_activity=assistant_message.created_at,
                    updated_at=assistant_message.created_at,
                )
            ).unwrap()
            return True
        except Exception as ex:  # noqa: BLE001
            err = PersistenceFailed(
                f"could not save turn for session {user_message.session_id}: {ex}"
            )
            logger.error("%s", err, exc_info=True)
            if self.telemetry is not None:
                self.telemetry.incr(PERSISTENCE_FAILED, {})
            return False

    def clear_cache(self) -> None:
        self.cache.clear()
