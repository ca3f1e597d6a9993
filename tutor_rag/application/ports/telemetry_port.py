"""Metrics sink for chat turns, plus the metric names the use cases emit."""

from typing import Any, Protocol

RETRIEVAL_DEGRADED = "chat.retrieval.degraded"
RETRIEVAL_DOCUMENTS = "chat.retrieval.documents"
STREAM_FAILED = "chat.stream.failed"
STREAM_CANCELLED = "chat.stream.cancelled"
STREAM_MALFORMED_FRAMES = "chat.stream.malformed_frames"
PERSISTENCE_FAILED = "chat.persistence.failed"
REQUEST_LATENCY_MS = "chat.request.latency_ms"

COUNTERS = (
    RETRIEVAL_DEGRADED,
    STREAM_FAILED,
    STREAM_CANCELLED,
    STREAM_MALFORMED_FRAMES,
    PERSISTENCE_FAILED,
)
HISTOGRAMS = (RETRIEVAL_DOCUMENTS, REQUEST_LATENCY_MS)


class TelemetryPort(Protocol):
    def incr(self, name: str, tags: dict[str, Any] | None = None) -> None:
        """Count one event (degraded retrieval, failed or cancelled stream)."""
        ...

    def observe(self, name: str, value: float, tags: dict[str, Any] | None = None) -> None:
        """Record one sample (latency in ms, documents per retrieval)."""
        ...
