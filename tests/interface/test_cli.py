import io
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import pytest

from tutor_rag.application.ports import ChatModelPort
from tutor_rag.config.composition import Container
from tutor_rag.config.settings import AppSettings
from tutor_rag.domain.models import ModelRequest
from tutor_rag.interface.cli.main import build_parser, run


class FakeModel:
    @asynccontextmanager
    async def open_stream(self, request: ModelRequest) -> AsyncIterator[AsyncIterator[str]]:
        yield self._lines()

    async def _lines(self) -> AsyncIterator[str]:
        for delta in ("Osmosis is ", "diffusion of water."):
            yield "data: " + json.dumps({"choices": [{"delta": {"content": delta}}]})


class FakeContainer(Container):
    def get_model(self) -> ChatModelPort:
        return FakeModel()


@pytest.fixture
def container() -> FakeContainer:
    return FakeContainer(
        AppSettings(persistence_backend="memory", search_backend="none", telemetry_enabled=False)
    )


def run_cli(argv: list[str], container: Container) -> tuple[int, str]:
    out = io.StringIO()
    code = run(argv, container=container, out=out)
    return code, out.getvalue()


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_ask_streams_answer_and_history(container):
    code, session_id = run_cli(["new-session", "--user", "student-1", "--title", "Bio"], container)
    session_id = session_id.strip()
    assert code == 0 and session_id

    code, output = run_cli(["ask", session_id, "What is osmosis?"], container)
    assert code == 0
    assert "Osmosis is diffusion of water." in output
    assert "confidence:" in output

    code, history = run_cli(["history", session_id], container)
    assert "user: What is osmosis?" in history
    assert "assistant: Osmosis is diffusion of water." in history


def test_export_markdown(container):
    _, session_id = run_cli(["new-session", "--user", "student-1", "--title", "Bio"], container)

    code, output = run_cli(["export", session_id.strip()], container)

    assert code == 0
    assert output.startswith("# Bio")


def test_unknown_session_reports_error(container):
    code, output = run_cli(["history", "missing"], container)
    assert code == 1
    assert "SessionNotFound" in output

    code, output = run_cli(["ask", "missing", "hello"], container)
    assert code == 1
    assert "[ERROR]" in output
