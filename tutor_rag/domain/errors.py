"""Domain errors (typed) for the chat engine.

Adapters translate third-party exceptions into this family so the
application layer never sees infrastructure types.
"""


class DomainError(Exception):
    """Base class for domain-specific errors."""


class ValidationError(DomainError):
    """Invalid input/domain state."""


class SessionNotFound(DomainError):
    """No chat session exists with the given id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"chat session not found: {session_id}")
        self.session_id = session_id


class RetrievalError(DomainError):
    """Document search backend failed (after infra errors were mapped)."""


class RetrievalDegraded(DomainError):
    """Retrieval failed or timed out; the request continues without context."""


class EmbeddingError(DomainError):
    """Embedding backend failed or is misconfigured."""


class TransportError(DomainError):
    """A single provider frame could not be decoded."""


class StreamFailed(DomainError):
    """The model stream failed fatally for the current request."""


class PersistenceFailed(DomainError):
    """Session or message store failed."""
