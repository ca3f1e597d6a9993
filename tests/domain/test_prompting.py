"""Tests for prompt assembly (context wrapping and history window)."""

from datetime import UTC, datetime, timedelta

from tutor_rag.domain.models import ChatMessage, ContextChunk, DocumentContext, MessageRole
from tutor_rag.domain.services.prompting import (
    CONTEXT_HEADER,
    MAX_HISTORY_MESSAGES,
    QUESTION_PREFIX,
    assemble_prompt,
    format_context,
    trim_history,
    wrap_with_context,
)

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def make_message(i: int, role: MessageRole = MessageRole.USER) -> ChatMessage:
    return ChatMessage(
        id=f"m{i}",
        session_id="s1",
        owner_id="u1",
        role=role,
        content=f"message {i}",
        created_at=T0 + timedelta(seconds=i),
    )


def water_context() -> DocumentContext:
    return DocumentContext(
        document_id="d1",
        document_title="Water",
        chunks=(
            ContextChunk("c1", "Water boils at 100C at sea level.", 0.9, page_number=4),
            ContextChunk("c2", "Pressure changes the boiling point.", 0.75),
        ),
        total_relevance_score=1.65,
    )


class TestFormatContext:
    def test_formats_chunks_with_pages(self) -> None:
        """Each chunk renders with its page number, or N/A when unknown."""
        text = format_context([water_context()])
        assert text == (
            "Water boils at 100C at sea level. (Page 4)\n\n"
            "Pressure changes the boiling point. (Page N/A)"
        )

    def test_empty_context(self) -> None:
        """No contexts render as an empty string."""
        assert format_context([]) == ""


class TestWrapWithContext:
    def test_without_context_returns_raw_message(self) -> None:
        """With zero contexts the prompt is the user's message unchanged."""
        assert wrap_with_context("What is osmosis?", []) == "What is osmosis?"

    def test_with_context_embeds_question_last(self) -> None:
        """Context comes first, the instruction next, the question last."""
        text = wrap_with_context("At what temperature does water boil?", [water_context()])
        assert text.startswith(CONTEXT_HEADER)
        assert "Water boils at 100C at sea level. (Page 4)" in text
        assert "say so explicitly" in text
        assert text.endswith(f"{QUESTION_PREFIX}At what temperature does water boil?")


class TestTrimHistory:
    def test_keeps_most_recent(self) -> None:
        """Only the latest messages are kept; oldest drop first."""
        history = [make_message(i) for i in range(15)]
        trimmed = trim_history(history)
        assert len(trimmed) == MAX_HISTORY_MESSAGES
        assert trimmed[0].id == "m5"
        assert trimmed[-1].id == "m14"

    def test_short_history_unchanged(self) -> None:
        """Histories under the limit are kept whole."""
        history = [make_message(i) for i in range(3)]
        assert trim_history(history) == history

    def test_non_positive_limit(self) -> None:
        """A zero limit drops all history."""
        assert trim_history([make_message(1)], limit=0) == []


class TestAssemblePrompt:
    def test_message_order(self) -> None:
        """System prompt, then history in order, then the new user turn."""
        history = [make_message(1), make_message(2, MessageRole.ASSISTANT)]
        request = assemble_prompt("next question", [], history, "Be a tutor.")

        assert [m.role for m in request.messages] == ["system", "user", "assistant", "user"]
        assert request.messages[0].content == "Be a tutor."
        assert request.prompt == "next question"

    def test_blank_system_prompt_omitted(self) -> None:
        """A blank system prompt adds no system message."""
        request = assemble_prompt("hi", [], [], "   ")
        assert [m.role for m in request.messages] == ["user"]

    def test_deterministic(self) -> None:
        """Identical inputs render identical requests."""
        args = ("q", [water_context()], [make_message(1)], "sys")
        assert assemble_prompt(*args) == assemble_prompt(*args)
        assert assemble_prompt(*args).render() == assemble_prompt(*args).render()

    def test_long_history_trimmed(self) -> None:
        """Only the last history messages are sent to the model."""
        history = [make_message(i) for i in range(30)]
        request = assemble_prompt("q", [], history, "sys")
        assert len(request.messages) == 1 + MAX_HISTORY_MESSAGES + 1
