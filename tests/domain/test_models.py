"""Tests for domain models."""

from datetime import UTC, datetime

import pytest

from tutor_rag.domain.errors import ValidationError
from tutor_rag.domain.models import (
    ChatSession,
    DocumentReference,
    ModelRequest,
    PromptMessage,
    StreamState,
)


class TestDocumentReference:
    @pytest.mark.parametrize("score", [0.0, 0.5, 1.0])
    def test_valid_scores(self, score: float) -> None:
        """Scores on the closed unit interval are accepted."""
        ref = DocumentReference("d", "T", "c", score, "e")
        assert ref.relevance_score == score

    @pytest.mark.parametrize("score", [-0.01, 1.01])
    def test_out_of_range_score_rejected(self, score: float) -> None:
        """Scores outside [0, 1] raise ValidationError."""
        with pytest.raises(ValidationError):
            DocumentReference("d", "T", "c", score, "e")

    def test_frozen(self) -> None:
        """References are immutable projections."""
        ref = DocumentReference("d", "T", "c", 0.5, "e")
        with pytest.raises(AttributeError):
            ref.excerpt = "changed"  # type: ignore[misc]


class TestStreamState:
    def test_terminal_states(self) -> None:
        """Only STREAMING is non-terminal."""
        assert not StreamState.STREAMING.is_terminal
        assert StreamState.COMPLETE.is_terminal
        assert StreamState.FAILED.is_terminal
        assert StreamState.CANCELLED.is_terminal


class TestModelRequest:
    def test_prompt_is_last_message(self) -> None:
        """prompt exposes the final user turn."""
        request = ModelRequest(
            messages=(PromptMessage("system", "sys"), PromptMessage("user", "question"))
        )
        assert request.prompt == "question"
        assert request.render() == "[system]\nsys\n\n[user]\nquestion"

    def test_empty_request(self) -> None:
        """An empty request has an empty prompt."""
        assert ModelRequest(messages=()).prompt == ""


def test_chat_session_defaults() -> None:
    """New sessions start with no messages and no document scope."""
    now = datetime(2024, 1, 1, tzinfo=UTC)
    session = ChatSession("s1", "u1", "Chat", now, now, now)
    assert session.message_count == 0
    assert session.document_ids == ()
    assert dict(session.metadata) == {}
