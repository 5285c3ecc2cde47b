from kpi_worker.database.repositories.analysis_repository import AnalysisRepository
from kpi_worker.database.repositories.document_repository import DocumentRepository
from kpi_worker.database.repositories.queue_repository import QueueRepository
from kpi_worker.logging.logger import Log
from kpi_worker.pipeline.exceptions import RegistrationError
from kpi_worker.pipeline.models import AnalysisParameters, Document, StageMessage
from kpi_worker.pipeline.status import Stage


class DocumentRegistrar:
    """Entry point of the pipeline: registers an uploaded document and queues its parse."""

    def __init__(
        self,
        *,
        analyses: AnalysisRepository,
        documents: DocumentRepository,
        queue: QueueRepository,
        max_documents_per_analysis: int = 3,
    ) -> None:
        self._analyses = analyses
        self._documents = documents
        self._queue = queue
        self._max_documents = max_documents_per_analysis

    def register(
        self,
        *,
        analysis_id: str,
        document_id: str,
        category: str,
        file_name: str,
        expected_document_count: int,
        parameters: AnalysisParameters,
    ) -> Document:
        """Raises:
        RegistrationError: on invalid input, a mismatched expected count, a
            terminal analysis or an analysis that already has all its documents.
        """
        self._validate(analysis_id, document_id, category, file_name, expected_document_count)
        self._validate_parameters(parameters)

        if self._analyses.create_if_absent(analysis_id, expected_document_count, parameters):
            Log.info(
                f"Analysis created, expecting {expected_document_count} documents",
                analysis_id=analysis_id,
            )
        else:
            existing = self._analyses.find_by_id(analysis_id)
            if existing is not None and existing.expected_document_count != expected_document_count:
                raise RegistrationError(
                    f"Analysis {analysis_id} expects {existing.expected_document_count} "
                    f"documents, got {expected_document_count}"
                )

        document = Document(
            document_id=document_id,
            analysis_id=analysis_id,
            category=category,
            file_name=file_name,
        )
        if not self._documents.register(document):
            raise RegistrationError(
                f"Analysis {analysis_id} already holds {expected_document_count} documents"
            )

        self._queue.enqueue(
            StageMessage(analysis_id=analysis_id, document_id=document_id, stage_hint=Stage.PARSE)
        )
        Log.info("Document registered", analysis_id=analysis_id, document_id=document_id)
        return document

    def _validate(
        self,
        analysis_id: str,
        document_id: str,
        category: str,
        file_name: str,
        expected_document_count: int,
    ) -> None:
        for name, value in (
            ("analysis_id", analysis_id),
            ("document_id", document_id),
            ("category", category),
            ("file_name", file_name),
        ):
            if not value or not value.strip():
                raise RegistrationError(f"'{name}' must be a non-empty string")
        if not 1 <= expected_document_count <= self._max_documents:
            raise RegistrationError(
                f"expected_document_count must be between 1 and {self._max_documents}, "
                f"got {expected_document_count}"
            )

    @staticmethod
    def _validate_parameters(parameters: AnalysisParameters) -> None:
        if not parameters.kpis:
            raise RegistrationError("At least one KPI must be requested")
        if len(set(parameters.kpis)) != len(parameters.kpis):
            raise RegistrationError("Requested KPI names must be unique")
        unknown = set(parameters.synonyms) - set(parameters.kpis)
        if unknown:
            raise RegistrationError(f"Synonyms given for unrequested KPIs: {sorted(unknown)}")
        if not parameters.locale:
            raise RegistrationError("'locale' must be a non-empty string")
