from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from typing import Protocol, runtime_checkable

from tutor_rag.domain.models import ModelRequest


@runtime_checkable
class ChatModelPort(Protocol):
    def open_stream(
        self, request: ModelRequest
    ) -> AbstractAsyncContextManager[AsyncIterator[str]]:
        """Open a streamed completion for the request.

        Args:
            request: Assembled model request

        Returns:
            Async context manager yielding the raw server-sent-event lines.
            Leaving the block releases the underlying connection.

        Raises:
            StreamFailed: On fatal transport errors, either when opening the
                stream or while iterating it.
        """
        ...
