# tutor_rag/domain/services/citations.py
# Pure domain services: no I/O, deterministic, no external libraries.
from __future__ import annotations

import re
from collections.abc import Sequence

from tutor_rag.domain.models import Citation, DocumentReference

EXCERPT_PATTERN_LENGTH = 20


def citation_patterns(source: DocumentReference) -> list[str]:
    """
    Literal search texts for one source, in fixed order:
    document title, "page <N>", first 20 characters of the excerpt.
    Blank patterns are dropped.
    """
    candidates = [source.document_title]
    if source.page_number is not None:
        candidates.append(f"page {source.page_number}")
    candidates.append(source.excerpt[:EXCERPT_PATTERN_LENGTH])
    return [p for p in candidates if p.strip()]


def extract_citations(
    response_text: str, sources: Sequence[DocumentReference]
) -> list[Citation]:
    """
    Link case-insensitive literal matches in response_text back to sources.

    Patterns are escaped, so document text is never interpreted as a regex.
    Output order: sources order, then pattern order, then match position.
    """
    citations: list[Citation] = []
    if not response_text:
        return citations

    for source in sources:
        for text in citation_patterns(source):
            pattern = re.compile(re.escape(text), re.IGNORECASE)
            for match in pattern.finditer(response_text):
                citations.append(
                    Citation(
                        id=f"cite-{len(citations) + 1}",
                        reference=source,
                        text=match.group(0),
                        start=match.start(),
                        end=match.end(),
                    )
                )
    return citations
