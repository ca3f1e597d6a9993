"""Persistence port for chat sessions and messages.

Repositories are synchronous and return Result[T, DomainError]; callers on
the event loop offload them with asyncio.to_thread.
"""

from collections.abc import Sequence
from typing import Protocol

from tutor_rag.domain.errors import DomainError
from tutor_rag.domain.models import ChatMessage, ChatSession
from tutor_rag.domain.types import Result


class SessionRepositoryPort(Protocol):
    def add_session(self, session: ChatSession) -> Result[None, DomainError]: ...

    def get_session(self, session_id: str) -> Result[ChatSession | None, DomainError]: ...

    def list_sessions(self, owner_id: str) -> Result[list[ChatSession], DomainError]:
        """Sessions of one owner, most recently updated first."""
        ...

    def update_session(self, session: ChatSession) -> Result[None, DomainError]: ...

    def delete_session(self, session_id: str) -> Result[None, DomainError]:
        """Delete a session together with its messages."""
        ...

    def add_messages(self, messages: Sequence[ChatMessage]) -> Result[None, DomainError]:
        """Persist messages atomically, in the given order."""
        ...

    def list_messages(self, session_id: str) -> Result[list[ChatMessage], DomainError]:
        """Messages of a session ordered by creation time ascending."""
        ...

    def get_message(self, message_id: str) -> Result[ChatMessage | None, DomainError]: ...
