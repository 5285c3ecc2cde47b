"""Generic per-stage worker contract.

Every stage runs the same envelope around its work:

1. skip when the analysis is terminal or the message is a duplicate,
2. write the processing sub-state before any work starts,
3. run the stage work and persist its artifacts,
4. conditionally write the completed sub-state, notify the completion
   monitor and enqueue the next stage.

A permanent error fails the document and then its analysis.
"""

from abc import ABC, abstractmethod
from typing import ClassVar

from kpi_worker.database.repositories.analysis_repository import AnalysisRepository
from kpi_worker.database.repositories.document_repository import DocumentRepository
from kpi_worker.database.repositories.queue_repository import QueueRepository
from kpi_worker.logging.logger import Log
from kpi_worker.pipeline.completion_monitor import CompletionMonitor
from kpi_worker.pipeline.exceptions import (
    AnalysisNotFoundError,
    DocumentNotFoundError,
    PermanentStageError,
    PersistenceError,
)
from kpi_worker.pipeline.models import Analysis, Document, StageMessage
from kpi_worker.pipeline.status import DocumentStatus, Stage, validate_transition


class StageWorker(ABC):
    stage: ClassVar[Stage]

    def __init__(
        self,
        *,
        analyses: AnalysisRepository,
        documents: DocumentRepository,
        queue: QueueRepository,
        monitor: CompletionMonitor,
    ) -> None:
        self._analyses = analyses
        self._documents = documents
        self._queue = queue
        self._monitor = monitor

    @abstractmethod
    def execute(self, analysis: Analysis, document: Document) -> None:
        """Do the stage work and persist its artifacts.

        Raises:
            PermanentStageError: when the document cannot pass this stage.
        """

    def next_message(self, message: StageMessage) -> StageMessage | None:
        next_stage = self.stage.next_stage
        if next_stage is None:
            return None
        return StageMessage(
            analysis_id=message.analysis_id,
            document_id=message.document_id,
            stage_hint=next_stage,
        )

    def handle(self, message: StageMessage) -> bool:
        """Process one message. Returns True when the stage completed the document."""
        context = {
            "analysis_id": message.analysis_id,
            "document_id": message.document_id,
            "stage": self.stage.value,
        }
        analysis = self._analyses.find_by_id(message.analysis_id)
        if analysis is None:
            raise AnalysisNotFoundError(f"Analysis {message.analysis_id} not found")
        if analysis.status.is_terminal:
            Log.info(f"Analysis is {analysis.status.value}, skipping message", **context)
            return False

        document = self._documents.find_by_id(message.document_id)
        if document is None or document.analysis_id != message.analysis_id:
            raise DocumentNotFoundError(
                f"Document {message.document_id} not found in analysis {message.analysis_id}"
            )

        current = document.stage_status
        if current not in (self.stage.input_status, self.stage.processing_status):
            self._handle_duplicate(message, document, context)
            return False

        processing = self.stage.processing_status
        validate_transition(current, processing)
        if not self._documents.transition(document.document_id, current, processing):
            Log.info("Document moved on concurrently, skipping message", **context)
            return False

        try:
            self.execute(analysis, document)
        except (PermanentStageError, PersistenceError) as exc:
            self.fail(message, str(exc))
            return False

        completed = self.stage.completed_status
        validate_transition(processing, completed)
        if not self._documents.transition(document.document_id, processing, completed):
            latest = self._analyses.find_by_id(message.analysis_id)
            state = latest.status.value if latest is not None else "missing"
            Log.info(f"Analysis is {state}, discarding stage result", **context)
            return False

        Log.info(f"Document reached {completed.value}", **context)
        self._advance(message, completed)
        return True

    def fail(self, message: StageMessage, error: str) -> None:
        """Fail the document, then its analysis. Both writes are first-writer-wins."""
        Log.error(
            f"Stage {self.stage.value} failed permanently: {error}",
            analysis_id=message.analysis_id,
            document_id=message.document_id,
        )
        self._documents.mark_failed(message.document_id, error)
        if self._analyses.mark_failed(
            message.analysis_id,
            f"Document {message.document_id} failed at {self.stage.value}: {error}",
        ):
            Log.error("Analysis marked as failed", analysis_id=message.analysis_id)

    def _advance(self, message: StageMessage, completed: DocumentStatus) -> None:
        follow_up = self.next_message(message)
        if follow_up is not None:
            self._queue.enqueue(follow_up)
        self._monitor.on_status_change(message.analysis_id, message.document_id, completed)

    def _handle_duplicate(
        self,
        message: StageMessage,
        document: Document,
        context: dict[str, object],
    ) -> None:
        # A crash between the completed write and the follow-up leaves the
        # document parked at the completed status; replay the follow-up.
        if document.stage_status is self.stage.completed_status:
            Log.info("Stage already completed, replaying follow-up", **context)
            self._advance(message, document.stage_status)
            return
        Log.info(
            f"Document is {document.stage_status.value}, skipping duplicate message",
            **context,
        )
