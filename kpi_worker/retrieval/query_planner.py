from kpi_worker.database.repositories.retrieval_repository import RetrievalRepository
from kpi_worker.embedding.base import BaseEmbedder
from kpi_worker.embedding.model_selector import EmbeddingModelSelector
from kpi_worker.logging.logger import Log
from kpi_worker.pipeline.exceptions import PermanentStageError
from kpi_worker.pipeline.models import Analysis, AnalysisParameters, KpiQuery
from kpi_worker.pipeline.retry import RetryPolicy


def build_queries(parameters: AnalysisParameters) -> list[KpiQuery]:
    """Query variants per KPI: its name, its synonyms and KPI x detail-level phrases."""
    queries: list[KpiQuery] = []
    for kpi in parameters.kpis:
        candidates = [
            kpi,
            *parameters.synonyms.get(kpi, []),
            *(f"{kpi} {level}" for level in parameters.detail_levels),
        ]
        variants: list[str] = []
        seen: set[str] = set()
        for candidate in candidates:
            key = candidate.strip().lower()
            if key and key not in seen:
                seen.add(key)
                variants.append(candidate.strip())
        queries.append(KpiQuery(kpi_name=kpi, variants=variants))
    return queries


class QueryPlanner:
    """Builds, embeds and stores the per-analysis retrieval query plan once."""

    def __init__(
        self,
        *,
        repository: RetrievalRepository,
        embedder: BaseEmbedder,
        model_selector: EmbeddingModelSelector,
        retry_policy: RetryPolicy,
        batch_size: int = 25,
    ) -> None:
        self._repository = repository
        self._embedder = embedder
        self._model_selector = model_selector
        self._retry_policy = retry_policy
        self._batch_size = batch_size

    def resolve(self, analysis: Analysis) -> list[KpiQuery]:
        existing = self._repository.find_query_plan(analysis.analysis_id)
        if existing is not None:
            return existing

        queries = build_queries(analysis.parameters)
        try:
            queries = self._embed(queries, analysis.parameters.locale)
        except PermanentStageError as exc:
            Log.warning(
                f"Query embedding failed, retrieval degrades to keyword-only: {exc}",
                analysis_id=analysis.analysis_id,
            )

        self._repository.save_query_plan(analysis.analysis_id, queries)
        return self._repository.find_query_plan(analysis.analysis_id) or queries

    def _embed(self, queries: list[KpiQuery], locale: str) -> list[KpiQuery]:
        model = self._model_selector.select(locale)
        texts = [variant for query in queries for variant in query.variants]
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            vectors.extend(
                self._retry_policy.call(
                    lambda batch=batch: self._embedder.embed(batch, model),
                    description="Query embedding",
                )
            )

        embedded: list[KpiQuery] = []
        offset = 0
        for query in queries:
            count = len(query.variants)
            embedded.append(
                KpiQuery(
                    kpi_name=query.kpi_name,
                    variants=query.variants,
                    embeddings=vectors[offset : offset + count],
                )
            )
            offset += count
        return embedded
