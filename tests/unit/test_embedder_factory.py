from unittest.mock import patch

import pytest

from kpi_worker.config.settings import Settings
from kpi_worker.embedding.example_adapter import ExampleEmbedderAdapter
from kpi_worker.embedding.factory import EmbedderFactory
from kpi_worker.embedding.model_selector import EmbeddingModelSelector


class TestEmbedderFactory:
    def test_creates_example_adapter(self) -> None:
        embedder = EmbedderFactory.create(Settings(embedding_provider="example"))
        assert isinstance(embedder, ExampleEmbedderAdapter)

    def test_uses_openai_settings(self) -> None:
        settings = Settings(
            embedding_provider="openai",
            embedding_openai_api_key="key",
            embedding_timeout_seconds=17,
        )
        with patch("kpi_worker.embedding.factory.OpenAIEmbedderAdapter") as mock_adapter:
            EmbedderFactory.create(settings)
        mock_adapter.assert_called_once_with(api_key="key", timeout_seconds=17)

    def test_uses_compatible_base_url(self) -> None:
        settings = Settings(
            embedding_provider="OpenAI_Compatible",
            embedding_openai_compatible_base_url="http://embeddings.local/v1",
        )
        with patch("kpi_worker.embedding.factory.OpenAIEmbedderAdapter") as mock_adapter:
            EmbedderFactory.create(settings)
        assert mock_adapter.call_args.kwargs["base_url"] == "http://embeddings.local/v1"

    def test_compatible_requires_base_url(self) -> None:
        with pytest.raises(ValueError, match="base_url is required"):
            EmbedderFactory.create(Settings(embedding_provider="openai_compatible"))

    def test_unknown_provider_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown embedding provider"):
            EmbedderFactory.create(Settings(embedding_provider="word2vec"))


class TestEmbeddingModelSelector:
    def test_english_locale_uses_default_model(self) -> None:
        selector = EmbeddingModelSelector("small", "multi")
        assert selector.select("en") == "small"
        assert selector.select("EN-gb") == "small"

    def test_other_locales_use_multilingual_model(self) -> None:
        selector = EmbeddingModelSelector("small", "multi")
        assert selector.select("de-DE") == "multi"

    def test_from_settings(self) -> None:
        selector = EmbeddingModelSelector.from_settings(Settings())
        assert selector.default_model == "text-embedding-3-small"
        assert selector.multilingual_model == "text-embedding-3-large"
