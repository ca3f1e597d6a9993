"""Application settings with environment-driven configuration.

This is the only module that reads environment variables.
"""

import os
from dataclasses import dataclass, field


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from environment variables.

    All other layers receive settings via the composition container.
    """

    # ===== LLM Configuration =====
    llm_base_url: str = field(
        default_factory=lambda: os.getenv("LLM_BASE_URL", "https://api.openai.com/v1")
    )
    llm_api_key: str = field(default_factory=lambda: os.getenv("LLM_API_KEY", "EMPTY"))
    llm_model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o"))
    llm_temperature: float = field(
        default_factory=lambda: float(os.getenv("LLM_TEMPERATURE", "0.7"))
    )
    llm_max_tokens: int = field(default_factory=lambda: int(os.getenv("LLM_MAX_TOKENS", "1000")))
    system_prompt: str = field(default_factory=lambda: os.getenv("CHAT_SYSTEM_PROMPT", ""))
    # Empty = built-in tutor prompt

    # ===== Retrieval Configuration =====
    retrieval_max_results: int = field(
        default_factory=lambda: int(os.getenv("RETRIEVAL_MAX_RESULTS", "5"))
    )
    retrieval_min_similarity: float = field(
        default_factory=lambda: float(os.getenv("RETRIEVAL_MIN_SIMILARITY", "0.7"))
    )
    retrieval_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("RETRIEVAL_TIMEOUT_S", "5.0"))
    )

    search_backend: str = field(
        default_factory=lambda: os.getenv("SEARCH_BACKEND", "qdrant").lower()
    )
    # Supported: "qdrant" | "none" (chat without document context)

    qdrant_url: str = field(
        default_factory=lambda: os.getenv("QDRANT_URL", "http://localhost:6333")
    )
    qdrant_api_key: str = field(default_factory=lambda: os.getenv("QDRANT_API_KEY", ""))
    qdrant_collection: str = field(
        default_factory=lambda: os.getenv("QDRANT_COLLECTION", "document_chunks")
    )

    # ===== Embedding Configuration =====
    embedding_model: str = field(
        default_factory=lambda: os.getenv(
            "EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2"
        )
    )
    embedding_device: str = field(default_factory=lambda: os.getenv("EMBEDDING_DEVICE", "cpu"))
    # Supported: "cpu" | "cuda" | "mps"

    # ===== Streaming Configuration =====
    stream_idle_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("STREAM_IDLE_TIMEOUT_S", "30.0"))
    )

    # ===== Persistence Configuration =====
    persistence_backend: str = field(
        default_factory=lambda: os.getenv("PERSISTENCE_BACKEND", "sqlalchemy").lower()
    )
    # Supported: "sqlalchemy" | "memory"

    database_url: str = field(
        default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///tutor_rag.db")
    )
    message_cache_size: int = field(
        default_factory=lambda: int(os.getenv("MESSAGE_CACHE_SIZE", "512"))
    )

    # ===== Telemetry Configuration =====
    telemetry_enabled: bool = field(default_factory=lambda: _flag("TELEMETRY_ENABLED", "false"))
    otlp_endpoint: str = field(default_factory=lambda: os.getenv("OTLP_ENDPOINT", ""))
    # Empty string = no OTLP export

    telemetry_environment: str = field(
        default_factory=lambda: os.getenv("TELEMETRY_ENVIRONMENT", "production")
    )

    # ===== Logging =====
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
