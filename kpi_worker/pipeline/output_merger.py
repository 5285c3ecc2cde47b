"""Reconciles per-document KPI responses into one analysis result."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from kpi_worker.database.repositories.analysis_repository import AnalysisRepository
from kpi_worker.database.repositories.document_repository import DocumentRepository
from kpi_worker.database.repositories.final_output_repository import FinalOutputRepository
from kpi_worker.database.repositories.kpi_response_repository import KpiResponseRepository
from kpi_worker.logging.logger import Log
from kpi_worker.pipeline.exceptions import PersistenceError
from kpi_worker.pipeline.models import Analysis, Document, KpiValue
from kpi_worker.pipeline.status import DocumentStatus


@dataclass(frozen=True)
class MergedKpi:
    document: Document
    value: KpiValue

    def to_dict(self) -> dict[str, Any]:
        return {**self.value.to_dict(), "document_id": self.document.document_id}


def category_rank(category: str, priority: list[str]) -> int:
    """Lower rank wins. Categories missing from the priority list rank last."""
    try:
        return priority.index(category)
    except ValueError:
        return len(priority)


def resolve_duplicates(candidates: list[MergedKpi], priority: list[str]) -> list[MergedKpi]:
    """Keep one entry per (kpi_name, detail_level).

    Higher confidence wins, then the higher-priority category, then the
    earliest document_id. Output is ordered by kpi_name and detail_level.
    """
    best: dict[tuple[str, str], MergedKpi] = {}
    for candidate in candidates:
        key = (candidate.value.kpi_name, candidate.value.detail_level or "")
        current = best.get(key)
        if current is None or _sort_key(candidate, priority) < _sort_key(current, priority):
            best[key] = candidate
    return [best[key] for key in sorted(best)]


def _sort_key(entry: MergedKpi, priority: list[str]) -> tuple[float, int, str]:
    return (
        -entry.value.confidence,
        category_rank(entry.document.category, priority),
        entry.document.document_id,
    )


def compute_metrics(
    analysis: Analysis,
    documents: list[Document],
    merged: list[MergedKpi],
) -> dict[str, Any]:
    requested = analysis.parameters.kpis
    extracted = {entry.value.kpi_name for entry in merged}
    coverage = len(extracted & set(requested)) / len(requested) if requested else 0.0
    mean_confidence = (
        sum(entry.value.confidence for entry in merged) / len(merged) if merged else 0.0
    )

    completed = [doc.completed_at for doc in documents]
    duration: float | None = None
    if analysis.created_at is not None and completed and None not in completed:
        duration = (max(completed) - analysis.created_at).total_seconds()

    return {
        "coverage": coverage,
        "mean_confidence": mean_confidence,
        "duration_seconds": duration,
        "kpis_requested": len(requested),
        "kpis_extracted": len(extracted),
        "document_count": len(documents),
    }


class OutputMerger:
    """Milestone action for "all documents extracted"."""

    def __init__(
        self,
        *,
        analyses: AnalysisRepository,
        documents: DocumentRepository,
        responses: KpiResponseRepository,
        outputs: FinalOutputRepository,
        category_priority: list[str],
    ) -> None:
        self._analyses = analyses
        self._documents = documents
        self._responses = responses
        self._outputs = outputs
        self._category_priority = category_priority

    def __call__(self, analysis: Analysis) -> None:
        self.merge(analysis)

    def merge(self, analysis: Analysis) -> bool:
        """Write the consolidated result, then complete the analysis.

        Returns True when this call moved the analysis to complete.
        """
        latest = self._analyses.find_by_id(analysis.analysis_id)
        if latest is None or latest.status.is_terminal:
            Log.info("Analysis is terminal, merge aborted", analysis_id=analysis.analysis_id)
            return False

        try:
            result, metadata = self._build(latest)
            self._outputs.save(latest.analysis_id, result, metadata)
            completed = self._analyses.mark_complete(latest.analysis_id)
        except PersistenceError as exc:
            Log.error(f"Final output could not be stored: {exc}", analysis_id=latest.analysis_id)
            self._analyses.mark_failed(latest.analysis_id, f"Output merge failed: {exc}")
            return False

        if completed:
            Log.info(
                f"Analysis complete: coverage {metadata['coverage']:.2f}, "
                f"mean confidence {metadata['mean_confidence']:.2f}",
                analysis_id=latest.analysis_id,
            )
        else:
            Log.warning("Analysis became terminal during merge", analysis_id=latest.analysis_id)
        return completed

    def _build(self, analysis: Analysis) -> tuple[dict[str, Any], dict[str, Any]]:
        documents = self._documents.list_for_analysis(analysis.analysis_id)
        responses = {
            response.document_id: response
            for response in self._responses.list_for_analysis(analysis.analysis_id)
        }

        candidates: list[MergedKpi] = []
        for document in documents:
            response = responses.get(document.document_id)
            if document.stage_status is not DocumentStatus.EXTRACTED or response is None:
                raise PersistenceError(
                    f"Document {document.document_id} has no stored KPI response"
                )
            candidates.extend(
                MergedKpi(document=document, value=value)
                for value in response.values
                if value.value is not None
            )

        merged = resolve_duplicates(candidates, self._category_priority)
        grouped: dict[str, list[dict[str, Any]]] = {}
        for entry in merged:
            grouped.setdefault(entry.document.category, []).append(entry.to_dict())

        metrics = compute_metrics(analysis, documents, merged)
        metadata = {
            **metrics,
            "merged_at": datetime.now(timezone.utc).isoformat(),
            "category_priority": list(self._category_priority),
        }
        result = {"analysis_id": analysis.analysis_id, "kpis_by_category": grouped}
        return result, metadata
