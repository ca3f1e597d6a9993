from dataclasses import dataclass
from typing import Any

from tutor_rag.application.ports.embedding_port import EmbeddingPort
from tutor_rag.domain.errors import EmbeddingError


@dataclass
class SentenceTransformersEmbeddingAdapter(EmbeddingPort):
    # must match the model the document index was built with
    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    device: str = "cpu"  # or "cuda" / "mps"

    def __post_init__(self) -> None:
        self._model: Any | None = None

    def _get(self) -> Any:
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer  # type: ignore
            except Exception as ex:  # pragma: no cover
                raise EmbeddingError("sentence-transformers not installed") from ex
            self._model = SentenceTransformer(self.model_name, device=self.device)
        return self._model

    def embed_query(self, text: str) -> list[float]:
        return self._get().encode(text, normalize_embeddings=True).tolist()
