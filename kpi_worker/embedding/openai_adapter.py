import httpx
import openai

from kpi_worker.embedding.base import BaseEmbedder
from kpi_worker.embedding.exceptions import EmbeddingError, EmbeddingNetworkError


class OpenAIEmbedderAdapter(BaseEmbedder):
    """Embedding adapter built on the OpenAI-compatible embeddings API."""

    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int,
        base_url: str | None = None,
    ) -> None:
        self._client = openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
        )

    def embed(self, texts: list[str], model_variant: str) -> list[list[float]]:
        if not texts:
            return []
        try:
            response = self._client.embeddings.create(model=model_variant, input=texts)
        except (
            openai.RateLimitError,
            openai.APIConnectionError,
            openai.InternalServerError,
            httpx.ConnectError,
            httpx.TimeoutException,
        ) as exc:
            raise EmbeddingNetworkError(f"Embedding provider network error: {exc}") from exc
        except openai.APIError as exc:
            raise EmbeddingError(f"Embedding provider API error: {exc}") from exc

        vectors = [item.embedding for item in sorted(response.data, key=lambda d: d.index)]
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding provider returned {len(vectors)} vectors for {len(texts)} texts"
            )
        return vectors
