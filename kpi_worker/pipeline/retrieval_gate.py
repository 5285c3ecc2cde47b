from kpi_worker.database.repositories.document_repository import DocumentRepository
from kpi_worker.database.repositories.queue_repository import QueueRepository
from kpi_worker.logging.logger import Log
from kpi_worker.pipeline.models import Analysis, StageMessage
from kpi_worker.pipeline.status import DocumentStatus, Stage
from kpi_worker.retrieval.query_planner import QueryPlanner


class RetrievalGate:
    """Milestone action for "all documents embedded".

    Resolves the analysis query plan once, then releases every embedded
    document into the retrieve stage.
    """

    def __init__(
        self,
        *,
        planner: QueryPlanner,
        documents: DocumentRepository,
        queue: QueueRepository,
    ) -> None:
        self._planner = planner
        self._documents = documents
        self._queue = queue

    def __call__(self, analysis: Analysis) -> None:
        queries = self._planner.resolve(analysis)
        released = 0
        for document in self._documents.list_for_analysis(analysis.analysis_id):
            if document.stage_status is not DocumentStatus.EMBEDDED:
                continue
            self._queue.enqueue(
                StageMessage(
                    analysis_id=analysis.analysis_id,
                    document_id=document.document_id,
                    stage_hint=Stage.RETRIEVE,
                )
            )
            released += 1
        Log.info(
            f"Query plan ready with {len(queries)} KPIs, "
            f"released {released} documents to retrieval",
            analysis_id=analysis.analysis_id,
        )
