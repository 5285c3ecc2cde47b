"""Hybrid semantic + keyword chunk ranking."""

import re

import numpy as np
from rank_bm25 import BM25Plus

from kpi_worker.logging.logger import Log
from kpi_worker.pipeline.models import Chunk, KpiQuery, ScoredChunk

_TOKEN_RE = re.compile(r"\w+")
_WHITESPACE_RE = re.compile(r"\s+")
_SIGNATURE_TEXT_CHARS = 200


def tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def chunk_signature(chunk: Chunk) -> tuple[int, str, str]:
    """Near-identical chunks share page, section and normalised leading text."""
    normalized = _WHITESPACE_RE.sub(" ", chunk.text).strip().lower()
    return chunk.page, chunk.section.strip().lower(), normalized[:_SIGNATURE_TEXT_CHARS]


def min_max_normalize(scores: np.ndarray) -> np.ndarray:
    if scores.size == 0:
        return scores
    low, high = float(scores.min()), float(scores.max())
    if high == low:
        return np.ones_like(scores) if high > 0 else np.zeros_like(scores)
    return (scores - low) / (high - low)


def max_normalize(scores: np.ndarray) -> np.ndarray:
    scores = np.clip(scores, 0.0, None)
    if scores.size == 0 or float(scores.max()) == 0.0:
        return np.zeros_like(scores)
    return scores / scores.max()


class SemanticScoringUnavailable(Exception):
    """Raised internally when chunk or query vectors cannot be compared."""


class HybridRetriever:
    """Ranks a document's chunks against one KPI query.

    The combined score is ``w * semantic + (1 - w) * keyword`` where both
    components are normalised to [0, 1] per query. When semantic scoring is
    unavailable the keyword score carries the full weight.
    """

    def __init__(self, top_k: int = 12, semantic_weight: float = 0.7) -> None:
        if top_k < 1:
            raise ValueError("top_k must be positive")
        if not 0.0 <= semantic_weight <= 1.0:
            raise ValueError("semantic_weight must be within [0, 1]")
        self._top_k = top_k
        self._semantic_weight = semantic_weight

    def rank(self, query: KpiQuery, chunks: list[Chunk]) -> list[ScoredChunk]:
        if not chunks:
            return []
        ordered = sorted(chunks, key=lambda c: c.position)
        keyword = max_normalize(self._keyword_scores(query, ordered))

        try:
            semantic = min_max_normalize(self._semantic_scores(query, ordered))
            combined = self._semantic_weight * semantic + (1.0 - self._semantic_weight) * keyword
        except SemanticScoringUnavailable as exc:
            Log.warning(
                f"Semantic scoring unavailable, ranking by keyword only: {exc}",
                kpi=query.kpi_name,
            )
            combined = keyword

        combined = np.clip(combined, 0.0, 1.0)
        # stable sort keeps position order among equal scores
        order = sorted(range(len(ordered)), key=lambda i: -float(combined[i]))

        results: list[ScoredChunk] = []
        seen: set[tuple[int, str, str]] = set()
        for i in order:
            score = float(combined[i])
            if score <= 0.0:
                break
            signature = chunk_signature(ordered[i])
            if signature in seen:
                continue
            seen.add(signature)
            results.append(ScoredChunk(chunk_id=ordered[i].chunk_id, score=score))
            if len(results) == self._top_k:
                break
        return results

    @staticmethod
    def _keyword_scores(query: KpiQuery, chunks: list[Chunk]) -> np.ndarray:
        corpus = [tokenize(f"{chunk.section} {chunk.text}") for chunk in chunks]
        terms = list(dict.fromkeys(t for variant in query.variants for t in tokenize(variant)))
        if not terms or not any(corpus):
            return np.zeros(len(chunks))
        # BM25Plus keeps IDF positive on one- or two-chunk documents, but its
        # delta term also scores chunks without any query term.
        scores = np.asarray(BM25Plus(corpus).get_scores(terms), dtype=float)
        query_terms = set(terms)
        matched = np.asarray([not query_terms.isdisjoint(doc) for doc in corpus])
        return np.where(matched, scores, 0.0)

    @staticmethod
    def _semantic_scores(query: KpiQuery, chunks: list[Chunk]) -> np.ndarray:
        if not query.embeddings:
            raise SemanticScoringUnavailable("query has no embeddings")
        missing = sum(1 for chunk in chunks if chunk.embedding is None)
        if missing:
            raise SemanticScoringUnavailable(f"{missing} chunks have no embedding")

        try:
            chunk_matrix = np.asarray([chunk.embedding for chunk in chunks], dtype=float)
            query_matrix = np.asarray(query.embeddings, dtype=float)
            similarity = _unit_rows(chunk_matrix) @ _unit_rows(query_matrix).T
        except ValueError as exc:
            raise SemanticScoringUnavailable(f"vector shapes do not match: {exc}") from exc
        return similarity.max(axis=1)


def _unit_rows(matrix: np.ndarray) -> np.ndarray:
    if matrix.ndim != 2:
        raise ValueError(f"expected a 2-d matrix, got {matrix.ndim} dimensions")
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0.0] = 1.0
    return matrix / norms
