"""Streaming chat completions against an OpenAI-compatible endpoint.

Yields the provider's raw server-sent-event lines; decoding and error
tolerance live in the application's StreamingResponseConsumer.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx

from tutor_rag.application.ports.chat_model_port import ChatModelPort
from tutor_rag.domain.errors import StreamFailed
from tutor_rag.domain.models import ModelRequest


@dataclass
class OpenAIStreamAdapter(ChatModelPort):
    base_url: str  # e.g. "https://api.openai.com/v1"
    api_key: str = "EMPTY"
    model: str = "gpt-4o"
    temperature: float = 0.7
    max_tokens: int = 1000
    connect_timeout_s: float = 10.0
    read_timeout_s: float = 60.0
    transport: httpx.AsyncBaseTransport | None = None  # tests inject httpx.MockTransport

    def _payload(self, request: ModelRequest) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": True,
        }

    @asynccontextmanager
    async def open_stream(self, request: ModelRequest) -> AsyncIterator[AsyncIterator[str]]:
        timeout = httpx.Timeout(self.read_timeout_s, connect=self.connect_timeout_s)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "text/event-stream",
        }
        url = f"{self.base_url.rstrip('/')}/chat/completions"
        async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
            try:
                async with client.stream(
                    "POST", url, json=self._payload(request), headers=headers
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise StreamFailed(
                            f"model returned HTTP {response.status_code}: {body[:200]}"
                        )
                    yield self._lines(response)
            except httpx.HTTPError as ex:
                raise StreamFailed(f"model request failed: {ex}") from ex

    @staticmethod
    async def _lines(response: httpx.Response) -> AsyncIterator[str]:
        try:
            async for line in response.aiter_lines():
                yield line
        except httpx.HTTPError as ex:
            raise StreamFailed(f"model stream interrupted: {ex}") from ex
