from kpi_worker.config.settings import Settings
from kpi_worker.embedding.base import BaseEmbedder
from kpi_worker.embedding.example_adapter import ExampleEmbedderAdapter
from kpi_worker.embedding.openai_adapter import OpenAIEmbedderAdapter


class EmbedderFactory:
    """Creates the configured embedding adapter."""

    @classmethod
    def create(cls, settings: Settings) -> BaseEmbedder:
        provider = settings.embedding_provider.lower()
        if provider == "example":
            return ExampleEmbedderAdapter()
        if provider == "openai":
            return OpenAIEmbedderAdapter(
                api_key=settings.embedding_openai_api_key,
                timeout_seconds=settings.embedding_timeout_seconds,
            )
        if provider == "openai_compatible":
            url = settings.embedding_openai_compatible_base_url.strip()
            if not url:
                raise ValueError(
                    "embedding_openai_compatible_base_url is required for "
                    "embedding_provider=openai_compatible"
                )
            return OpenAIEmbedderAdapter(
                api_key=settings.embedding_openai_api_key,
                timeout_seconds=settings.embedding_timeout_seconds,
                base_url=url,
            )
        raise ValueError(
            f"Unknown embedding provider '{provider}'. "
            "Choose from: ['example', 'openai', 'openai_compatible']"
        )
