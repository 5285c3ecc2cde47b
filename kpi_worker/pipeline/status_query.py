from dataclasses import dataclass, field
from typing import Any

from kpi_worker.database.repositories.analysis_repository import AnalysisRepository
from kpi_worker.database.repositories.document_repository import DocumentRepository
from kpi_worker.database.repositories.final_output_repository import FinalOutputRepository
from kpi_worker.pipeline.exceptions import AnalysisNotFoundError, ResultNotReadyError
from kpi_worker.pipeline.models import Analysis
from kpi_worker.pipeline.status import AnalysisStatus, DocumentStatus


@dataclass(frozen=True)
class AnalysisProgress:
    analysis_id: str
    status: AnalysisStatus
    expected_document_count: int
    document_statuses: dict[str, DocumentStatus] = field(default_factory=dict)
    error_message: str | None = None

    @property
    def documents_by_status(self) -> dict[str, list[str]]:
        grouped: dict[str, list[str]] = {}
        for document_id, status in sorted(self.document_statuses.items()):
            grouped.setdefault(status.value, []).append(document_id)
        return grouped


@dataclass(frozen=True)
class FinalResult:
    analysis_id: str
    result: dict[str, Any]
    metadata: dict[str, Any]


class AnalysisStatusReader:
    """Read side consumed by the API layer."""

    def __init__(
        self,
        *,
        analyses: AnalysisRepository,
        documents: DocumentRepository,
        outputs: FinalOutputRepository,
    ) -> None:
        self._analyses = analyses
        self._documents = documents
        self._outputs = outputs

    def get_progress(self, analysis_id: str) -> AnalysisProgress:
        analysis = self._require(analysis_id)
        return AnalysisProgress(
            analysis_id=analysis_id,
            status=analysis.status,
            expected_document_count=analysis.expected_document_count,
            document_statuses={
                document.document_id: document.stage_status
                for document in self._documents.list_for_analysis(analysis_id)
            },
            error_message=analysis.error_message,
        )

    def get_result(self, analysis_id: str) -> FinalResult:
        """Raises:
        AnalysisNotFoundError: if the analysis does not exist.
        ResultNotReadyError: unless the analysis is complete.
        """
        analysis = self._require(analysis_id)
        if analysis.status is not AnalysisStatus.COMPLETE:
            raise ResultNotReadyError(
                f"Analysis {analysis_id} is {analysis.status.value}, result not available"
            )
        stored = self._outputs.find(analysis_id)
        if stored is None:
            raise ResultNotReadyError(f"Analysis {analysis_id} has no stored result")
        result, metadata = stored
        return FinalResult(analysis_id=analysis_id, result=result, metadata=metadata)

    def _require(self, analysis_id: str) -> Analysis:
        analysis = self._analyses.find_by_id(analysis_id)
        if analysis is None:
            raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")
        return analysis
