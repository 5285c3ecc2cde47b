from collections.abc import Callable

from kpi_worker.database.repositories.analysis_repository import AnalysisRepository
from kpi_worker.database.repositories.document_repository import DocumentRepository
from kpi_worker.logging.logger import Log
from kpi_worker.pipeline.exceptions import PipelineError
from kpi_worker.pipeline.models import Analysis
from kpi_worker.pipeline.status import DocumentStatus, statuses_at_or_past

MilestoneAction = Callable[[Analysis], None]


class CompletionMonitor:
    """Join barrier over the documents of an analysis.

    On every status change the monitor recounts the documents at or past the
    milestone. When the count reaches the expected document count, the
    milestone marker is claimed with a conditional insert. The marker stays open
    until the action returns, so a redelivered event reruns an action that
    crashed; once closed, later events are ignored.
    """

    def __init__(
        self,
        *,
        analyses: AnalysisRepository,
        documents: DocumentRepository,
        actions: dict[DocumentStatus, MilestoneAction] | None = None,
    ) -> None:
        self._analyses = analyses
        self._documents = documents
        self._actions: dict[DocumentStatus, MilestoneAction] = dict(actions or {})

    def register(self, milestone: DocumentStatus, action: MilestoneAction) -> None:
        if milestone is DocumentStatus.FAILED:
            raise ValueError("failed is not a milestone")
        self._actions[milestone] = action

    def on_status_change(self, analysis_id: str, document_id: str, status: DocumentStatus) -> bool:
        """Returns True when this call triggered the milestone action."""
        action = self._actions.get(status)
        if action is None:
            return False

        analysis = self._analyses.find_by_id(analysis_id)
        if analysis is None or analysis.status.is_terminal:
            return False

        done = self._documents.count_in_statuses(analysis_id, statuses_at_or_past(status))
        if done < analysis.expected_document_count:
            Log.debug(
                f"{done}/{analysis.expected_document_count} documents at or past {status.value}",
                analysis_id=analysis_id,
                document_id=document_id,
            )
            return False

        if not self._analyses.claim_milestone(analysis_id, status.value):
            Log.info(f"Milestone {status.value} already handled", analysis_id=analysis_id)
            return False

        Log.info(f"All documents reached {status.value}", analysis_id=analysis_id)
        try:
            action(analysis)
        except PipelineError as exc:
            Log.error(f"Milestone action for {status.value} failed: {exc}", analysis_id=analysis_id)
            self._analyses.mark_failed(analysis_id, f"Milestone {status.value} failed: {exc}")
        # Any other error propagates with the marker still open; the
        # redelivered message reruns the action.
        self._analyses.complete_milestone(analysis_id, status.value)
        return True
