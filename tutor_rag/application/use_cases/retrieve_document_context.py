# tutor_rag/application/use_cases/retrieve_document_context.py
from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from tutor_rag.application.ports.document_search_port import DocumentSearchPort
from tutor_rag.application.ports.telemetry_port import (
    RETRIEVAL_DEGRADED,
    RETRIEVAL_DOCUMENTS,
    TelemetryPort,
)
from tutor_rag.domain.errors import RetrievalDegraded
from tutor_rag.domain.models import DocumentContext
from tutor_rag.domain.services.ranking import count_chunks, group_by_document

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 5
DEFAULT_MIN_SIMILARITY = 0.7


class DocumentContextRetriever:
    """
    Fetch chunk hits from the external search capability and group them per document.

    Retrieval never aborts a chat turn: backend failures and timeouts are
    logged and degrade to an empty context.
    """

    def __init__(
        self,
        search: DocumentSearchPort,
        telemetry: TelemetryPort | None = None,
        timeout_s: float = 5.0,
        default_min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> None:
        self.search = search
        self.telemetry = telemetry
        self.timeout_s = timeout_s
        self.default_min_similarity = default_min_similarity

    async def retrieve(
        self,
        query: str,
        allowed_document_ids: Sequence[str],
        max_results: int = DEFAULT_MAX_RESULTS,
        min_similarity: float | None = None,
    ) -> list[DocumentContext]:
        if not query or not query.strip():
            return []
        if not allowed_document_ids or max_results <= 0:
            return []

        threshold = self.default_min_similarity if min_similarity is None else min_similarity
        try:
            hits = await asyncio.wait_for(
                self.search.search(query, list(allowed_document_ids), max_results, threshold),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            self._degrade(RetrievalDegraded(f"document search timed out after {self.timeout_s}s"))
            return []
        except Exception as ex:  # noqa: BLE001
            self._degrade(RetrievalDegraded(f"document search failed: {ex}"))
            return []

        contexts = group_by_document(hits)
        if self.telemetry is not None:
            self.telemetry.observe(RETRIEVAL_DOCUMENTS, float(len(contexts)), {})
        logger.debug(
            "retrieved %d chunks across %d documents", count_chunks(contexts), len(contexts)
        )
        return contexts

    def _degrade(self, err: RetrievalDegraded) -> None:
        logger.warning("%s; continuing without document context", err)
        if self.telemetry is not None:
            self.telemetry.incr(RETRIEVAL_DEGRADED, {})
