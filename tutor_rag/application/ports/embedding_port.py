from typing import Protocol, runtime_checkable


@runtime_checkable
class EmbeddingPort(Protocol):
    """Query-side embedding; documents are embedded by the external indexer."""

    def embed_query(self, text: str) -> list[float]: ...
