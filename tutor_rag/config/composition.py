"""Dependency injection container with environment-driven wiring.

The only place where adapters are chosen; all other layers receive ports.
"""

from tutor_rag.application.ports import (
    ChatModelPort,
    ClockPort,
    DocumentSearchPort,
    EmbeddingPort,
    SessionRepositoryPort,
    TelemetryPort,
)
from tutor_rag.application.use_cases.chat_service import (
    DEFAULT_SYSTEM_PROMPT,
    ChatOptions,
    ChatService,
)
from tutor_rag.application.use_cases.chat_session_store import ChatSessionStore
from tutor_rag.application.use_cases.retrieve_document_context import DocumentContextRetriever
from tutor_rag.config.settings import AppSettings
from tutor_rag.domain.errors import ValidationError


class Container:
    """Dependency injection container for application components.

    Adapters are built lazily on first use, so a CLI command that only lists
    sessions never loads the embedding model or opens an HTTP client.
    """

    def __init__(self, settings: AppSettings | None = None) -> None:
        """Initialize container with settings.

        Args:
            settings: Application settings (default: load from environment)
        """
        self.settings = settings or AppSettings()
        self._telemetry: TelemetryPort | None = None
        self._clock: ClockPort | None = None
        self._repository: SessionRepositoryPort | None = None
        self._embedding: EmbeddingPort | None = None
        self._search: DocumentSearchPort | None = None
        self._model: ChatModelPort | None = None
        self._chat_service: ChatService | None = None

    # ===== Adapters =====

    def get_telemetry(self) -> TelemetryPort:
        if self._telemetry is None:
            self._telemetry = self._build_telemetry()
        return self._telemetry

    def get_clock(self) -> ClockPort:
        if self._clock is None:
            from tutor_rag.infrastructure.time.system_clock import SystemClock

            self._clock = SystemClock()
        return self._clock

    def get_repository(self) -> SessionRepositoryPort:
        """Get or create the session repository based on settings.persistence_backend."""
        if self._repository is None:
            self._repository = self._build_repository()
        return self._repository

    def get_embedding(self) -> EmbeddingPort:
        if self._embedding is None:
            from tutor_rag.infrastructure.embeddings.sentence_transformers_adapter import (
                SentenceTransformersEmbeddingAdapter,
            )

            self._embedding = SentenceTransformersEmbeddingAdapter(
                model_name=self.settings.embedding_model,
                device=self.settings.embedding_device,
            )
        return self._embedding

    def get_document_search(self) -> DocumentSearchPort:
        """Get or create the search adapter based on settings.search_backend."""
        if self._search is None:
            self._search = self._build_document_search()
        return self._search

    def get_model(self) -> ChatModelPort:
        if self._model is None:
            from tutor_rag.infrastructure.llm.openai_stream_adapter import OpenAIStreamAdapter

            self._model = OpenAIStreamAdapter(
                base_url=self.settings.llm_base_url,
                api_key=self.settings.llm_api_key,
                model=self.settings.llm_model,
                temperature=self.settings.llm_temperature,
                max_tokens=self.settings.llm_max_tokens,
            )
        return self._model

    # ===== Use Cases =====

    def get_chat_service(self) -> ChatService:
        """Build the chat service with all dependencies (cached per container)."""
        if self._chat_service is None:
            s = self.settings
            telemetry = self.get_telemetry()
            self._chat_service = ChatService(
                retriever=DocumentContextRetriever(
                    self.get_document_search(),
                    telemetry=telemetry,
                    timeout_s=s.retrieval_timeout_s,
                    default_min_similarity=s.retrieval_min_similarity,
                ),
                store=ChatSessionStore(
                    self.get_repository(),
                    self.get_clock(),
                    telemetry=telemetry,
                    cache_size=s.message_cache_size,
                ),
                model=self.get_model(),
                clock=self.get_clock(),
                telemetry=telemetry,
                options=ChatOptions(
                    system_prompt=s.system_prompt or DEFAULT_SYSTEM_PROMPT,
                    max_results=s.retrieval_max_results,
                    min_similarity=s.retrieval_min_similarity,
                    stream_idle_timeout_s=s.stream_idle_timeout_s,
                ),
            )
        return self._chat_service

    # ===== Private Builder Methods =====

    def _build_telemetry(self) -> TelemetryPort:
        from tutor_rag.infrastructure.telemetry.otel_adapter import (
            NoopTelemetry,
            OpenTelemetryAdapter,
            OtelConfig,
        )

        if not self.settings.telemetry_enabled:
            return NoopTelemetry()
        return OpenTelemetryAdapter(
            OtelConfig(
                otlp_endpoint=self.settings.otlp_endpoint or None,
                environment=self.settings.telemetry_environment,
            )
        )

    def _build_repository(self) -> SessionRepositoryPort:
        backend = self.settings.persistence_backend

        if backend == "memory":
            from tutor_rag.infrastructure.persistence.in_memory_repository import (
                InMemorySessionRepository,
            )

            return InMemorySessionRepository()
        if backend == "sqlalchemy":
            from tutor_rag.infrastructure.persistence.sqlalchemy_repository import (
                SqlAlchemySessionRepository,
            )

            return SqlAlchemySessionRepository.from_url(self.settings.database_url)
        raise ValidationError(f"unknown PERSISTENCE_BACKEND: {backend!r}")

    def _build_document_search(self) -> DocumentSearchPort:
        backend = self.settings.search_backend

        if backend == "none":
            from tutor_rag.infrastructure.search.null_document_search import NullDocumentSearch

            return NullDocumentSearch()
        if backend == "qdrant":
            from tutor_rag.infrastructure.search.qdrant_document_search import (
                QdrantConfig,
                QdrantDocumentSearch,
            )

            cfg = QdrantConfig(
                url=self.settings.qdrant_url,
                collection=self.settings.qdrant_collection,
                api_key=self.settings.qdrant_api_key or None,
            )
            return QdrantDocumentSearch(cfg, self.get_embedding())
        raise ValidationError(f"unknown SEARCH_BACKEND: {backend!r}")


def build_chat_service(settings: AppSettings | None = None) -> ChatService:
    return Container(settings).get_chat_service()
