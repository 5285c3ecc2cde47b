"""Example embedding adapter.

Deterministic hashed bag-of-words vectors. No network calls; useful for local
development and tests, and as a template for real provider adapters.
"""

import hashlib
import math
import re

from kpi_worker.embedding.base import BaseEmbedder

_TOKEN_RE = re.compile(r"\w+")


class ExampleEmbedderAdapter(BaseEmbedder):
    def __init__(self, dimension: int = 64) -> None:
        self._dimension = dimension

    def embed(self, texts: list[str], model_variant: str) -> list[list[float]]:
        _ = model_variant
        return [self._vectorize(text) for text in texts]

    def _vectorize(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "big") % self._dimension] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0.0:
            return vector
        return [v / norm for v in vector]
