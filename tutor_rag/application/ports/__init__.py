"""Application ports package.

Re-exports every port so adapters and use cases import from one place.
"""

from tutor_rag.application.ports.chat_model_port import ChatModelPort
from tutor_rag.application.ports.clock_port import ClockPort
from tutor_rag.application.ports.document_search_port import DocumentSearchPort, SearchHit
from tutor_rag.application.ports.embedding_port import EmbeddingPort
from tutor_rag.application.ports.session_repository_port import SessionRepositoryPort
from tutor_rag.application.ports.telemetry_port import TelemetryPort

__all__ = [
    "ChatModelPort",
    "ClockPort",
    "DocumentSearchPort",
    "EmbeddingPort",
    "SearchHit",
    "SessionRepositoryPort",
    "TelemetryPort",
]
