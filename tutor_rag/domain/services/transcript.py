from __future__ import annotations

from collections.abc import Sequence

from tutor_rag.domain.models import ChatMessage, ChatSession, MessageRole

_ROLE_HEADINGS = {
    MessageRole.USER: "User",
    MessageRole.ASSISTANT: "Assistant",
    MessageRole.SYSTEM: "System",
}


def render_markdown(session: ChatSession, messages: Sequence[ChatMessage]) -> str:
    """Render a session transcript as Markdown, listing each answer's sources."""
    parts = [
        f"# {session.title}\n\n",
        f"**Created:** {session.created_at:%Y-%m-%d}\n",
        f"**Messages:** {len(messages)}\n\n",
    ]
    for message in messages:
        parts.append(f"## {_ROLE_HEADINGS[message.role]}\n\n{message.content}\n\n")
        if message.document_references:
            parts.append("**Sources:**\n")
            for ref in message.document_references:
                parts.append(f"- {ref.document_title} (Page {ref.page_number or 'N/A'})\n")
            parts.append("\n")
    return "".join(parts)
