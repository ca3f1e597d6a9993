# tutor_rag/domain/services/ranking.py
# Pure domain services: no I/O, deterministic, no external libraries.
from __future__ import annotations

from collections.abc import Sequence

from tutor_rag.domain.models import ContextChunk, DocumentContext, DocumentReference, SearchHit

EXCERPT_LENGTH = 200


def clamp_unit(value: float) -> float:
    """Clamp a score into [0, 1]."""
    return min(max(value, 0.0), 1.0)


def group_by_document(hits: Sequence[SearchHit]) -> list[DocumentContext]:
    """
    Group flat chunk hits by document and rank documents by summed similarity.

    - Every chunk is kept; chunk order inside a document follows hit order.
    - Documents are sorted by total_relevance_score descending. The sort is
      stable, so documents with equal totals keep first-seen order.
    """
    order: list[str] = []
    titles: dict[str, str] = {}
    chunks: dict[str, list[ContextChunk]] = {}
    totals: dict[str, float] = {}

    for hit in hits:
        if hit.document_id not in chunks:
            order.append(hit.document_id)
            titles[hit.document_id] = hit.document_title
            chunks[hit.document_id] = []
            totals[hit.document_id] = 0.0
        chunks[hit.document_id].append(
            ContextChunk(
                chunk_id=hit.chunk_id,
                content=hit.content,
                relevance_score=hit.similarity,
                page_number=hit.page_number,
            )
        )
        totals[hit.document_id] += hit.similarity

    contexts = [
        DocumentContext(
            document_id=doc_id,
            document_title=titles[doc_id],
            chunks=tuple(chunks[doc_id]),
            total_relevance_score=totals[doc_id],
        )
        for doc_id in order
    ]
    return sorted(contexts, key=lambda c: c.total_relevance_score, reverse=True)


def to_references(contexts: Sequence[DocumentContext]) -> list[DocumentReference]:
    """Project retrieved contexts into message references, in retrieval order."""
    refs: list[DocumentReference] = []
    for ctx in contexts:
        for chunk in ctx.chunks:
            score = clamp_unit(chunk.relevance_score)
            refs.append(
                DocumentReference(
                    document_id=ctx.document_id,
                    document_title=ctx.document_title,
                    chunk_id=chunk.chunk_id,
                    page_number=chunk.page_number,
                    relevance_score=score,
                    excerpt=chunk.content[:EXCERPT_LENGTH],
                    confidence=score,
                )
            )
    return refs


def count_chunks(contexts: Sequence[DocumentContext]) -> int:
    return sum(len(c.chunks) for c in contexts)
