"""Streaming consumption of the model provider's incremental frames.

State machine: STREAMING -> COMPLETE | FAILED | CANCELLED.

Pipeline per frame:
1. Check the cancellation token
2. Read the next SSE line (bounded by the idle timeout)
3. Decode it; malformed frames are logged and skipped
4. Re-emit the delta to the caller immediately

On end of stream the full text is scored and cited, and exactly one final
chunk is emitted. The provider connection is held inside an async context
manager, so it is released on every exit path.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass

from tutor_rag.application.dto.chat_dto import ResponseChunk
from tutor_rag.application.ports.chat_model_port import ChatModelPort
from tutor_rag.application.ports.telemetry_port import (
    STREAM_CANCELLED,
    STREAM_FAILED,
    STREAM_MALFORMED_FRAMES,
    TelemetryPort,
)
from tutor_rag.domain.errors import StreamFailed, TransportError
from tutor_rag.domain.models import DocumentReference, ModelRequest, StreamState
from tutor_rag.domain.services.citations import extract_citations
from tutor_rag.domain.services.quality import score_response

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and a stream."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass(frozen=True)
class ProviderFrame:
    delta: str | None = None
    done: bool = False


IGNORED_FRAME = ProviderFrame()


def parse_provider_frame(line: str) -> ProviderFrame:
    """
    Decode one SSE line of the form  data: {"choices":[{"delta":{"content":"..."}}]}

    - lines without a "data:" field (blank, comments, event:) are ignored
    - "data: [DONE]" marks the end of the stream
    - raises TransportError if the payload is not valid JSON of that shape
    """
    stripped = line.strip()
    if not stripped.startswith(DATA_PREFIX):
        return IGNORED_FRAME
    data = stripped[len(DATA_PREFIX) :].strip()
    if data == DONE_SENTINEL:
        return ProviderFrame(done=True)
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as ex:
        raise TransportError(f"invalid JSON frame: {ex}") from ex
    if not isinstance(payload, dict):
        raise TransportError("frame payload is not an object")

    choices = payload.get("choices")
    if not choices:
        return IGNORED_FRAME
    if not isinstance(choices, list) or not isinstance(choices[0], dict):
        raise TransportError("frame choices have an unexpected shape")
    delta = choices[0].get("delta") or {}
    if not isinstance(delta, dict):
        raise TransportError("frame delta has an unexpected shape")
    content = delta.get("content")
    if content is not None and not isinstance(content, str):
        raise TransportError("frame content is not a string")
    return ProviderFrame(delta=content or None)


class StreamingResponseConsumer:
    """Consume one provider stream and re-emit normalized ResponseChunks.

    One instance per request: `state` and `accumulated` describe that stream.
    """

    def __init__(
        self,
        model: ChatModelPort,
        idle_timeout_s: float = 30.0,
        telemetry: TelemetryPort | None = None,
    ) -> None:
        self.model = model
        self.idle_timeout_s = idle_timeout_s
        self.telemetry = telemetry
        self.state = StreamState.STREAMING
        self._parts: list[str] = []

    @property
    def accumulated(self) -> str:
        return "".join(self._parts)

    async def consume(
        self,
        request: ModelRequest,
        sources: Sequence[DocumentReference],
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[ResponseChunk]:
        if self.state is not StreamState.STREAMING:
            raise RuntimeError(f"stream already finished in state {self.state.value}")

        try:
            async with self.model.open_stream(request) as lines:
                iterator = aiter(lines)
                while True:
                    if cancel is not None and cancel.cancelled:
                        self._cancel()
                        return
                    try:
                        line = await asyncio.wait_for(anext(iterator), timeout=self.idle_timeout_s)
                    except StopAsyncIteration:
                        break
                    # the token may have tripped while the read was pending
                    if cancel is not None and cancel.cancelled:
                        self._cancel()
                        return

                    try:
                        frame = parse_provider_frame(line)
                    except TransportError as ex:
                        logger.warning("skipping malformed provider frame: %s", ex)
                        self._incr(STREAM_MALFORMED_FRAMES)
                        continue

                    if frame.done:
                        break
                    if frame.delta:
                        self._parts.append(frame.delta)
                        yield ResponseChunk(content=frame.delta, is_complete=False)
        except asyncio.TimeoutError:
            yield self._fail(StreamFailed(f"no data from model within {self.idle_timeout_s}s"))
            return
        except StreamFailed as ex:
            yield self._fail(ex)
            return

        if cancel is not None and cancel.cancelled:
            self._cancel()
            return

        full_text = self.accumulated
        refs = tuple(sources)
        citations = extract_citations(full_text, refs)
        quality = score_response(full_text, refs)
        self.state = StreamState.COMPLETE
        yield ResponseChunk(
            content=full_text,
            is_complete=True,
            sources=refs,
            citations=tuple(citations),
            confidence=quality.overall,
            quality=quality,
        )

    def _fail(self, err: StreamFailed) -> ResponseChunk:
        logger.error("model stream failed: %s", err)
        self.state = StreamState.FAILED
        self._incr(STREAM_FAILED)
        return ResponseChunk(content="", is_complete=True, error=str(err))

    def _cancel(self) -> None:
        logger.info("stream cancelled by caller after %d deltas", len(self._parts))
        self.state = StreamState.CANCELLED
        self._incr(STREAM_CANCELLED)

    def _incr(self, name: str) -> None:
        if self.telemetry is not None:
            self.telemetry.incr(name, {})
