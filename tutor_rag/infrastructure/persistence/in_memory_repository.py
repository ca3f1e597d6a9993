"""Process-local session repository.

Used for development (PERSISTENCE_BACKEND=memory) and tests. Not shared
across processes and lost on restart.
"""

import threading
from collections.abc import Sequence

from tutor_rag.application.ports.session_repository_port import SessionRepositoryPort
from tutor_rag.domain.errors import DomainError, PersistenceFailed
from tutor_rag.domain.models import ChatMessage, ChatSession
from tutor_rag.domain.types import Result


class InMemorySessionRepository(SessionRepositoryPort):
    def __init__(self) -> None:
        self._sessions: dict[str, ChatSession] = {}
        self._messages: dict[str, list[ChatMessage]] = {}
        self._lock = threading.Lock()

    def add_session(self, session: ChatSession) -> Result[None, DomainError]:
        with self._lock:
            if session.id in self._sessions:
                return Result.failure(PersistenceFailed(f"session {session.id} already exists"))
            self._sessions[session.id] = session
            self._messages[session.id] = []
        return Result.success(None)

    def get_session(self, session_id: str) -> Result[ChatSession | None, DomainError]:
        with self._lock:
            return Result.success(self._sessions.get(session_id))

    def list_sessions(self, owner_id: str) -> Result[list[ChatSession], DomainError]:
        with self._lock:
            owned = [s for s in self._sessions.values() if s.owner_id == owner_id]
        owned.sort(key=lambda s: s.updated_at, reverse=True)
        return Result.success(owned)

    def update_session(self, session: ChatSession) -> Result[None, DomainError]:
        with self._lock:
            if session.id not in self._sessions:
                return Result.failure(PersistenceFailed(f"session {session.id} does not exist"))
            self._sessions[session.id] = session
        return Result.success(None)

    def delete_session(self, session_id: str) -> Result[None, DomainError]:
        with self._lock:
            self._sessions.pop(session_id, None)
            self._messages.pop(session_id, None)
        return Result.success(None)

    def add_messages(self, messages: Sequence[ChatMessage]) -> Result[None, DomainError]:
        with self._lock:
            missing = {m.session_id for m in messages} - self._messages.keys()
            if missing:
                return Result.failure(
                    PersistenceFailed(f"unknown session(s): {', '.join(sorted(missing))}")
                )
            for msg in messages:
                self._messages[msg.session_id].append(msg)
        return Result.success(None)

    def list_messages(self, session_id: str) -> Result[list[ChatMessage], DomainError]:
        with self._lock:
            messages = list(self._messages.get(session_id, []))
        # stable sort keeps insertion order for equal timestamps
        messages.sort(key=lambda m: m.created_at)
        return Result.success(messages)

    def get_message(self, message_id: str) -> Result[ChatMessage | None, DomainError]:
        with self._lock:
            for messages in self._messages.values():
                for msg in messages:
                    if msg.id == message_id:
                        return Result.success(msg)
        return Result.success(None)
