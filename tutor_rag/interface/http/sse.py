import json

from tutor_rag.application.dto.chat_dto import ResponseChunk

SSE_MEDIA_TYPE = "text/event-stream"


def encode_sse(chunk: ResponseChunk) -> str:
    """Frame one chunk as a server-sent event: ``data: <json>`` plus a blank line."""
    return f"data: {json.dumps(chunk.to_payload())}\n\n"
