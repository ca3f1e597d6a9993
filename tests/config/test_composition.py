"""Tests for environment-driven settings and adapter wiring."""

import pytest

from tutor_rag.application.use_cases.chat_service import DEFAULT_SYSTEM_PROMPT
from tutor_rag.config.composition import Container, build_chat_service
from tutor_rag.config.settings import AppSettings
from tutor_rag.domain.errors import ValidationError
from tutor_rag.infrastructure.llm.openai_stream_adapter import OpenAIStreamAdapter
from tutor_rag.infrastructure.persistence.in_memory_repository import InMemorySessionRepository
from tutor_rag.infrastructure.persistence.sqlalchemy_repository import SqlAlchemySessionRepository
from tutor_rag.infrastructure.search.null_document_search import NullDocumentSearch
from tutor_rag.infrastructure.search.qdrant_document_search import QdrantDocumentSearch
from tutor_rag.infrastructure.telemetry.otel_adapter import NoopTelemetry


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("LLM_MODEL", "tutor-7b")
    monkeypatch.setenv("LLM_TEMPERATURE", "0.2")
    monkeypatch.setenv("RETRIEVAL_MAX_RESULTS", "8")
    monkeypatch.setenv("RETRIEVAL_MIN_SIMILARITY", "0.6")
    monkeypatch.setenv("SEARCH_BACKEND", "NONE")
    monkeypatch.setenv("TELEMETRY_ENABLED", "true")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = AppSettings()

    assert settings.llm_model == "tutor-7b"
    assert settings.llm_temperature == 0.2
    assert settings.retrieval_max_results == 8
    assert settings.retrieval_min_similarity == 0.6
    assert settings.search_backend == "none"
    assert settings.telemetry_enabled is True
    assert settings.log_level == "DEBUG"


def test_settings_defaults(monkeypatch):
    for key in ("RETRIEVAL_MAX_RESULTS", "RETRIEVAL_MIN_SIMILARITY", "MESSAGE_CACHE_SIZE"):
        monkeypatch.delenv(key, raising=False)

    settings = AppSettings()

    assert settings.retrieval_max_results == 5
    assert settings.retrieval_min_similarity == 0.7
    assert settings.message_cache_size == 512


def test_memory_backends_wiring():
    container = Container(
        AppSettings(
            persistence_backend="memory",
            search_backend="none",
            telemetry_enabled=False,
            llm_base_url="http://llm.local/v1",
            llm_model="tutor-7b",
            message_cache_size=16,
        )
    )

    service = container.get_chat_service()

    assert isinstance(container.get_repository(), InMemorySessionRepository)
    assert isinstance(container.get_document_search(), NullDocumentSearch)
    assert isinstance(container.get_telemetry(), NoopTelemetry)
    model = container.get_model()
    assert isinstance(model, OpenAIStreamAdapter)
    assert model.base_url == "http://llm.local/v1"
    assert model.model == "tutor-7b"
    assert service.store.cache.max_size == 16
    assert service.options.system_prompt == DEFAULT_SYSTEM_PROMPT
    assert container.get_chat_service() is service


def test_sqlalchemy_and_qdrant_wiring():
    container = Container(
        AppSettings(
            persistence_backend="sqlalchemy",
            database_url="sqlite://",
            search_backend="qdrant",
            qdrant_collection="chunks",
            telemetry_enabled=False,
        )
    )

    assert isinstance(container.get_repository(), SqlAlchemySessionRepository)
    # the qdrant client and the embedding model are only created on first search
    assert isinstance(container.get_document_search(), QdrantDocumentSearch)


@pytest.mark.parametrize(
    "overrides",
    [{"persistence_backend": "mongo"}, {"search_backend": "elasticsearch"}],
)
def test_unknown_backends_rejected(overrides):
    settings = AppSettings(telemetry_enabled=False, **overrides)
    container = Container(settings)

    with pytest.raises(ValidationError):
        if "persistence_backend" in overrides:
            container.get_repository()
        else:
            container.get_document_search()


def test_build_chat_service_uses_custom_system_prompt():
    service = build_chat_service(
        AppSettings(
            persistence_backend="memory",
            search_backend="none",
            telemetry_enabled=False,
            system_prompt="Answer like a chemistry tutor.",
        )
    )
    assert service.options.system_prompt == "Answer like a chemistry tutor."
