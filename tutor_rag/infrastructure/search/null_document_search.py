from collections.abc import Sequence

from tutor_rag.application.ports import DocumentSearchPort
from tutor_rag.domain.models import SearchHit


class NullDocumentSearch(DocumentSearchPort):
    """Search backend for deployments without a document index (SEARCH_BACKEND=none)."""

    async def search(
        self,
        query: str,
        document_ids: Sequence[str],
        max_results: int,
        min_similarity: float,
    ) -> list[SearchHit]:
        return []
