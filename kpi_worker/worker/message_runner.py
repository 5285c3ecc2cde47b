from kpi_worker.config.settings import Settings
from kpi_worker.database.models import QueueMessageRecord
from kpi_worker.database.repositories.analysis_repository import AnalysisRepository
from kpi_worker.database.repositories.queue_repository import QueueRepository
from kpi_worker.logging.logger import Log
from kpi_worker.pipeline.exceptions import PersistenceError
from kpi_worker.pipeline.stage_worker import StageWorker
from kpi_worker.pipeline.status import Stage


class MessageRunner:
    """Dispatch one message to its stage worker and apply redelivery logic."""

    def __init__(
        self,
        workers: dict[Stage, StageWorker],
        queue_repo: QueueRepository,
        analysis_repo: AnalysisRepository,
        settings: Settings,
    ) -> None:
        self._workers = workers
        self._queue_repo = queue_repo
        self._analysis_repo = analysis_repo
        self._settings = settings

    def run(self, record: QueueMessageRecord) -> None:
        """Execute a single message with error handling."""
        Log.info(
            f"Running message {record.id} for stage {record.stage_hint} "
            f"(attempt {record.attempts + 1})",
            analysis_id=record.analysis_id,
            document_id=record.document_id,
        )
        try:
            message = record.to_message()
            worker = self._workers[message.stage_hint]
        except (ValueError, KeyError) as exc:
            self._dead_letter(record, f"No stage worker for '{record.stage_hint}': {exc}")
            return

        try:
            worker.handle(message)
            self._queue_repo.mark_done(record.id)
        except Exception as exc:
            self._handle_failure(record, exc)

    def _handle_failure(self, record: QueueMessageRecord, exc: Exception) -> None:
        """Redeliver until max_message_attempts, then dead-letter and fail the analysis."""
        Log.error(
            f"Message {record.id} failed: {exc}",
            analysis_id=record.analysis_id,
            document_id=record.document_id,
        )
        try:
            if record.attempts + 1 >= self._settings.max_message_attempts:
                self._dead_letter(record, str(exc))
            else:
                self._queue_repo.release(record.id, str(exc))
                Log.warning(f"Message {record.id} will be redelivered")
        except PersistenceError as store_exc:
            # the visibility timeout will make the message deliverable again
            Log.error(f"Could not record failure of message {record.id}: {store_exc}")

    def _dead_letter(self, record: QueueMessageRecord, error: str) -> None:
        self._queue_repo.mark_failed(record.id, error)
        Log.error(
            f"Message {record.id} dead-lettered after {record.attempts + 1} attempts",
            analysis_id=record.analysis_id,
        )
        if self._analysis_repo.mark_failed(
            record.analysis_id,
            f"Stage {record.stage_hint} for document {record.document_id} could not be "
            f"processed: {error}",
        ):
            Log.error("Analysis marked as failed", analysis_id=record.analysis_id)
