from abc import ABC, abstractmethod


class BaseEmbedder(ABC):
    """Contract for all embedding adapters."""

    @abstractmethod
    def embed(self, texts: list[str], model_variant: str) -> list[list[float]]:
        """Embed a batch of texts, one vector per text in input order.

        Raises:
            EmbeddingNetworkError: on transient provider failures.
            EmbeddingError: on any other failure.
        """
