"""Qdrant-backed document search capability.

The index (collection, embeddings, chunk payloads) is owned by the ingestion
side; this adapter only queries it. Expected chunk payload keys:
document_id, document_title, content, page_number (optional), chunk_id
(optional, falls back to the point id).
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from tutor_rag.application.ports import DocumentSearchPort, EmbeddingPort
from tutor_rag.domain.errors import RetrievalError
from tutor_rag.domain.models import SearchHit


@dataclass
class QdrantConfig:
    """Configuration for Qdrant client connection."""

    url: str
    collection: str
    api_key: str | None = None
    prefer_grpc: bool = False
    timeout_s: int = 30


class QdrantDocumentSearch(DocumentSearchPort):
    """DocumentSearchPort over a Qdrant collection of embedded chunks.

    Scope is enforced with a payload filter on document_id; the minimum
    similarity maps to Qdrant's score_threshold.
    """

    def __init__(
        self, cfg: QdrantConfig, embedding: EmbeddingPort, client: Any | None = None
    ) -> None:
        """Initialize Qdrant search adapter.

        Args:
            cfg: QdrantConfig with connection parameters
            embedding: Port used to embed the query text
            client: Optional pre-built AsyncQdrantClient (tests pass a fake)
        """
        self._cfg = cfg
        self._embedding = embedding
        self._client = client

    def _get_client(self) -> Any:
        """Create the AsyncQdrantClient with lazy import.

        Raises:
            RetrievalError: If qdrant-client is not available or init fails
        """
        if self._client is None:
            try:
                qdrant_client = import_module("qdrant_client")
                self._client = qdrant_client.AsyncQdrantClient(
                    url=self._cfg.url,
                    api_key=self._cfg.api_key,
                    timeout=self._cfg.timeout_s,
                    prefer_grpc=self._cfg.prefer_grpc,
                )
            except Exception as ex:
                raise RetrievalError(f"Qdrant init failed: {ex}") from ex
        return self._client

    def _scope_filter(self, document_ids: Sequence[str]) -> Any:
        models = import_module("qdrant_client.models")
        return models.Filter(
            must=[
                models.FieldCondition(
                    key="document_id",
                    match=models.MatchAny(any=list(document_ids)),
                )
            ]
        )

    async def search(
        self,
        query: str,
        document_ids: Sequence[str],
        max_results: int,
        min_similarity: float,
    ) -> list[SearchHit]:
        client = self._get_client()
        vector = await asyncio.to_thread(self._embedding.embed_query, query)
        try:
            response = await client.query_points(
                collection_name=self._cfg.collection,
                query=vector,
                query_filter=self._scope_filter(document_ids),
                limit=max_results,
                score_threshold=min_similarity,
                with_payload=True,
            )
        except Exception as ex:
            raise RetrievalError(f"Qdrant search failed: {ex}") from ex
        return [self._to_hit(point) for point in response.points]

    @staticmethod
    def _to_hit(point: Any) -> SearchHit:
        payload = point.payload or {}
        page = payload.get("page_number")
        return SearchHit(
            chunk_id=str(payload.get("chunk_id") or point.id),
            document_id=str(payload.get("document_id", "unknown")),
            document_title=str(payload.get("document_title", "")),
            content=str(payload.get("content", "")),
            page_number=int(page) if page is not None else None,
            similarity=float(point.score),
        )
