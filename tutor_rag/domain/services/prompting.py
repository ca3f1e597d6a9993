"""Prompt assembly: retrieved context + recent history + the new user turn.

Pure function, so the same inputs always render the same request.
"""

from __future__ import annotations

from collections.abc import Sequence

from tutor_rag.domain.models import (
    ChatMessage,
    DocumentContext,
    MessageRole,
    ModelRequest,
    PromptMessage,
)

MAX_HISTORY_MESSAGES = 10

CONTEXT_HEADER = "Context from documents:"
CONTEXT_INSTRUCTION = (
    "Answer the question using the context above. If the context does not contain "
    "enough information to answer, say so explicitly."
)
QUESTION_PREFIX = "User question: "


def format_context(contexts: Sequence[DocumentContext]) -> str:
    """Flatten all chunks, in retriever order, into blank-line separated lines."""
    lines = [
        f"{chunk.content} (Page {chunk.page_number or 'N/A'})"
        for ctx in contexts
        for chunk in ctx.chunks
    ]
    return "\n\n".join(lines)


def wrap_with_context(user_message: str, contexts: Sequence[DocumentContext]) -> str:
    context_info = format_context(contexts)
    if not context_info:
        return user_message
    return (
        f"{CONTEXT_HEADER}\n{context_info}\n\n"
        f"{CONTEXT_INSTRUCTION}\n\n"
        f"{QUESTION_PREFIX}{user_message}"
    )


def trim_history(
    history: Sequence[ChatMessage], limit: int = MAX_HISTORY_MESSAGES
) -> list[ChatMessage]:
    """Keep the most recent `limit` messages; the oldest are dropped first."""
    if limit <= 0:
        return []
    return list(history[-limit:])


def assemble_prompt(
    user_message: str,
    contexts: Sequence[DocumentContext],
    history: Sequence[ChatMessage],
    system_prompt: str,
) -> ModelRequest:
    messages: list[PromptMessage] = []
    if system_prompt.strip():
        messages.append(PromptMessage(role=MessageRole.SYSTEM.value, content=system_prompt))
    for msg in trim_history(history):
        messages.append(PromptMessage(role=msg.role.value, content=msg.content))
    messages.append(
        PromptMessage(
            role=MessageRole.USER.value, content=wrap_with_context(user_message, contexts)
        )
    )
    return ModelRequest(messages=tuple(messages))
