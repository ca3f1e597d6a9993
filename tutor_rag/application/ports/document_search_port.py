from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from tutor_rag.domain.models import SearchHit

__all__ = ["DocumentSearchPort", "SearchHit"]


@runtime_checkable
class DocumentSearchPort(Protocol):
    """Nearest-neighbour search over document chunks, owned by an external index."""

    async def search(
        self,
        query: str,
        document_ids: Sequence[str],
        max_results: int,
        min_similarity: float,
    ) -> list[SearchHit]: ...
