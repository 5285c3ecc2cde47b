from dataclasses import dataclass

from kpi_worker.config.settings import Settings


@dataclass(frozen=True)
class EmbeddingModelSelector:
    """Picks the embedding model variant from the analysis locale flag."""

    default_model: str
    multilingual_model: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmbeddingModelSelector":
        return cls(
            default_model=settings.embedding_model_name,
            multilingual_model=settings.embedding_multilingual_model_name,
        )

    def select(self, locale: str) -> str:
        if locale.lower().startswith("en"):
            return self.default_model
        return self.multilingual_model
