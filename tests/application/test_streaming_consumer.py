"""Tests for StreamingResponseConsumer and provider frame decoding."""

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import pytest

from tutor_rag.application.dto.chat_dto import ResponseChunk
from tutor_rag.application.use_cases.stream_response import (
    CancellationToken,
    ProviderFrame,
    StreamingResponseConsumer,
    parse_provider_frame,
)
from tutor_rag.domain.errors import StreamFailed, TransportError
from tutor_rag.domain.models import DocumentReference, ModelRequest, PromptMessage, StreamState

REQUEST = ModelRequest(messages=(PromptMessage("user", "When does water boil?"),))
DONE = "data: [DONE]"


def frame(text: str) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": text}}]})


@dataclass
class Stall:
    """Script step: go silent for `seconds`."""

    seconds: float


class ScriptedModel:
    """Fake ChatModelPort replaying a script of lines, errors and stalls."""

    def __init__(self, script: list[Any], open_error: Exception | None = None) -> None:
        self.script = script
        self.open_error = open_error
        self.opened = 0
        self.released = 0

    @asynccontextmanager
    async def open_stream(self, request: ModelRequest) -> AsyncIterator[AsyncIterator[str]]:
        self.opened += 1
        if self.open_error is not None:
            raise self.open_error
        try:
            yield self._lines()
        finally:
            self.released += 1

    async def _lines(self) -> AsyncIterator[str]:
        for step in self.script:
            if isinstance(step, Stall):
                await asyncio.sleep(step.seconds)
            elif isinstance(step, Exception):
                raise step
            else:
                yield step


class RecordingTelemetry:
    def __init__(self) -> None:
        self.counters: list[str] = []

    def incr(self, name: str, tags: dict[str, Any] | None = None) -> None:
        self.counters.append(name)

    def observe(self, name: str, value: float, tags: dict[str, Any] | None = None) -> None:
        pass


async def collect(
    consumer: StreamingResponseConsumer,
    sources: list[DocumentReference] | None = None,
    cancel: CancellationToken | None = None,
) -> list[ResponseChunk]:
    return [c async for c in consumer.consume(REQUEST, sources or [], cancel)]


class TestParseProviderFrame:
    @pytest.mark.parametrize("line", ["", "   ", ": keep-alive", "event: message"])
    def test_non_data_lines_ignored(self, line: str) -> None:
        assert parse_provider_frame(line) == ProviderFrame()

    def test_done_sentinel(self) -> None:
        assert parse_provider_frame("data: [DONE]").done

    def test_delta(self) -> None:
        assert parse_provider_frame(frame("Hello")).delta == "Hello"

    def test_empty_choices_ignored(self) -> None:
        """Usage-only frames carry no choices and are ignored."""
        assert parse_provider_frame('data: {"choices": []}') == ProviderFrame()

    def test_role_only_delta_has_no_text(self) -> None:
        frame_ = parse_provider_frame('data: {"choices": [{"delta": {"role": "assistant"}}]}')
        assert frame_.delta is None and not frame_.done

    @pytest.mark.parametrize(
        "line",
        [
            "data: {not json",
            "data: [1, 2]",
            'data: {"choices": "nope"}',
            'data: {"choices": [{"delta": "x"}]}',
            'data: {"choices": [{"delta": {"content": 5}}]}',
        ],
    )
    def test_malformed_frames_raise(self, line: str) -> None:
        with pytest.raises(TransportError):
            parse_provider_frame(line)


class TestConsume:
    @pytest.mark.asyncio
    async def test_deltas_then_single_final_chunk(self) -> None:
        """N deltas are re-emitted in order, then exactly one final chunk."""
        model = ScriptedModel([frame("Water "), frame("boils "), frame("at 100C."), DONE])
        consumer = StreamingResponseConsumer(model)

        chunks = await collect(consumer)

        assert [c.content for c in chunks[:-1]] == ["Water ", "boils ", "at 100C."]
        assert not any(c.is_complete for c in chunks[:-1])
        final = chunks[-1]
        assert final.is_complete and final.error is None
        assert final.content == "Water boils at 100C."
        assert consumer.state is StreamState.COMPLETE
        assert model.released == 1

    @pytest.mark.asyncio
    async def test_final_chunk_carries_sources_citations_and_quality(self) -> None:
        ref = DocumentReference("d1", "Thermo Notes", "c1", 0.9, "Water boils at 100C", page_number=4)
        model = ScriptedModel([frame("Per Thermo Notes, "), frame("see page 4."), DONE])

        chunks = await collect(StreamingResponseConsumer(model), sources=[ref])

        final = chunks[-1]
        assert final.sources == (ref,)
        assert [c.text for c in final.citations] == ["Thermo Notes", "page 4"]
        assert final.quality is not None
        assert final.confidence == final.quality.overall

    @pytest.mark.asyncio
    async def test_end_of_stream_without_done(self) -> None:
        """A stream that simply ends still completes."""
        chunks = await collect(StreamingResponseConsumer(ScriptedModel([frame("Hi")])))
        assert chunks[-1].is_complete and chunks[-1].content == "Hi"

    @pytest.mark.asyncio
    async def test_malformed_frame_is_skipped(self) -> None:
        """One bad frame is logged and skipped; the stream continues."""
        telemetry = RecordingTelemetry()
        model = ScriptedModel([frame("A"), "data: {broken", "", ": ping", frame("B"), DONE])

        chunks = await collect(StreamingResponseConsumer(model, telemetry=telemetry))

        assert chunks[-1].content == "AB"
        assert chunks[-1].error is None
        assert telemetry.counters == ["chat.stream.malformed_frames"]

    @pytest.mark.asyncio
    async def test_transport_failure_yields_error_chunk(self) -> None:
        """A fatal error mid-stream ends with one terminal error chunk."""
        telemetry = RecordingTelemetry()
        model = ScriptedModel([frame("Water "), StreamFailed("connection reset")])
        consumer = StreamingResponseConsumer(model, telemetry=telemetry)

        chunks = await collect(consumer)

        assert [c.is_complete for c in chunks] == [False, True]
        assert "connection reset" in chunks[-1].error
        assert chunks[-1].sources is None
        assert consumer.state is StreamState.FAILED
        assert telemetry.counters == ["chat.stream.failed"]
        assert model.released == 1

    @pytest.mark.asyncio
    async def test_open_failure_yields_error_chunk(self) -> None:
        model = ScriptedModel([], open_error=StreamFailed("model returned HTTP 500"))
        chunks = await collect(StreamingResponseConsumer(model))

        assert len(chunks) == 1
        assert chunks[0].failed and chunks[0].is_complete

    @pytest.mark.asyncio
    async def test_idle_timeout_fails_stream(self) -> None:
        """A provider that goes silent past the idle timeout fails the stream."""
        model = ScriptedModel([frame("Water "), Stall(1.0), frame("late"), DONE])
        consumer = StreamingResponseConsumer(model, idle_timeout_s=0.05)

        chunks = await collect(consumer)

        assert chunks[-1].failed
        assert consumer.state is StreamState.FAILED
        assert model.released == 1

    @pytest.mark.asyncio
    async def test_cancel_stops_without_final_chunk(self) -> None:
        """Cancelling after 3 deltas yields no final chunk and releases once."""
        model = ScriptedModel([frame(str(i)) for i in range(5)] + [DONE])
        consumer = StreamingResponseConsumer(model)
        token = CancellationToken()
        chunks: list[ResponseChunk] = []

        async for chunk in consumer.consume(REQUEST, [], token):
            chunks.append(chunk)
            if len(chunks) == 3:
                token.cancel()

        assert [c.content for c in chunks] == ["0", "1", "2"]
        assert not any(c.is_complete for c in chunks)
        assert consumer.state is StreamState.CANCELLED
        assert model.released == 1

    @pytest.mark.asyncio
    async def test_cancel_during_pending_read_drops_the_late_delta(self) -> None:
        """A delta arriving after the token trips mid-read is never yielded."""
        model = ScriptedModel([frame("a"), Stall(0.2), frame("b"), DONE])
        consumer = StreamingResponseConsumer(model)
        token = CancellationToken()
        chunks: list[ResponseChunk] = []

        async for chunk in consumer.consume(REQUEST, [], token):
            chunks.append(chunk)
            asyncio.get_running_loop().call_later(0.05, token.cancel)

        assert [c.content for c in chunks] == ["a"]
        assert consumer.accumulated == "a"
        assert consumer.state is StreamState.CANCELLED
        assert model.released == 1

    @pytest.mark.asyncio
    async def test_closing_the_consumer_releases_the_stream(self) -> None:
        """Abandoning iteration (aclose) still releases the provider stream."""
        model = ScriptedModel([frame("a"), frame("b"), DONE])
        gen = StreamingResponseConsumer(model).consume(REQUEST, [])

        first = await anext(gen)
        await gen.aclose()

        assert first.content == "a"
        assert model.released == 1

    @pytest.mark.asyncio
    async def test_consumer_is_single_use(self) -> None:
        consumer = StreamingResponseConsumer(ScriptedModel([DONE]))
        await collect(consumer)

        with pytest.raises(RuntimeError):
            await collect(consumer)

    @pytest.mark.asyncio
    async def test_empty_answer_still_completes(self) -> None:
        chunks = await collect(StreamingResponseConsumer(ScriptedModel([DONE])))
        assert len(chunks) == 1
        assert chunks[0].is_complete and chunks[0].content == ""
