"""Heuristic response quality scoring.

The heuristics are intentionally simple: completeness is length based and
clarity only looks for a question mark. Both are approximations.
"""

from __future__ import annotations

from collections.abc import Sequence

from tutor_rag.domain.models import DocumentReference, ResponseQuality
from tutor_rag.domain.services.ranking import clamp_unit

COMPLETE_RESPONSE_CHARS = 500
UNCERTAIN_CLARITY = 0.8
NEUTRAL_CONFIDENCE = 0.5


def score_response(response_text: str, sources: Sequence[DocumentReference]) -> ResponseQuality:
    if sources:
        source_relevance = clamp_unit(sum(s.relevance_score for s in sources) / len(sources))
        confidence = source_relevance
    else:
        source_relevance = 0.0
        confidence = NEUTRAL_CONFIDENCE

    completeness = clamp_unit(len(response_text) / COMPLETE_RESPONSE_CHARS)
    # A question mark is read as a weak hint of hedging.
    clarity = UNCERTAIN_CLARITY if "?" in response_text else 1.0
    overall = clamp_unit((confidence + source_relevance + completeness + clarity) / 4)

    return ResponseQuality(
        confidence=confidence,
        source_relevance=source_relevance,
        completeness=completeness,
        clarity=clarity,
        overall=overall,
    )
