from kpi_worker.config.settings import Settings
from kpi_worker.database.connection import apply_schema, close_pool, get_connection, init_pool
from kpi_worker.database.repositories.analysis_repository import AnalysisRepository
from kpi_worker.database.repositories.chunk_repository import ChunkRepository
from kpi_worker.database.repositories.document_repository import DocumentRepository
from kpi_worker.database.repositories.final_output_repository import FinalOutputRepository
from kpi_worker.database.repositories.kpi_response_repository import KpiResponseRepository
from kpi_worker.database.repositories.queue_repository import QueueRepository
from kpi_worker.database.repositories.retrieval_repository import RetrievalRepository
from kpi_worker.embedding.factory import EmbedderFactory
from kpi_worker.embedding.model_selector import EmbeddingModelSelector
from kpi_worker.extraction import ExtractorFactory
from kpi_worker.logging.logger import Log
from kpi_worker.parsing.factory import DocumentParserFactory
from kpi_worker.pipeline.completion_monitor import CompletionMonitor
from kpi_worker.pipeline.file_loader import FileLoader
from kpi_worker.pipeline.output_merger import OutputMerger
from kpi_worker.pipeline.retrieval_gate import RetrievalGate
from kpi_worker.pipeline.retry import RetryPolicy
from kpi_worker.pipeline.stage_worker import StageWorker
from kpi_worker.pipeline.stages import EmbedStage, ExtractStage, ParseStage, RetrieveStage
from kpi_worker.pipeline.status import DocumentStatus, Stage
from kpi_worker.retrieval.hybrid_retriever import HybridRetriever
from kpi_worker.retrieval.query_planner import QueryPlanner
from kpi_worker.vision.factory import ImageDescriberFactory
from kpi_worker.worker.message_runner import MessageRunner
from kpi_worker.worker.worker import Worker


def build_stage_workers(
    settings: Settings,
    queue_repo: QueueRepository,
) -> dict[Stage, StageWorker]:
    """Wire repositories, collaborators and milestone actions into one worker per stage."""
    analyses = AnalysisRepository()
    documents = DocumentRepository()
    chunks = ChunkRepository()
    retrieval = RetrievalRepository()
    responses = KpiResponseRepository()
    outputs = FinalOutputRepository()

    retry_policy = RetryPolicy.from_settings(settings)
    embedder = EmbedderFactory.create(settings)
    model_selector = EmbeddingModelSelector.from_settings(settings)
    planner = QueryPlanner(
        repository=retrieval,
        embedder=embedder,
        model_selector=model_selector,
        retry_policy=retry_policy,
        batch_size=settings.embedding_batch_size,
    )

    monitor = CompletionMonitor(analyses=analyses, documents=documents)
    if settings.gate_retrieval_on_embedded:
        monitor.register(
            DocumentStatus.EMBEDDED,
            RetrievalGate(planner=planner, documents=documents, queue=queue_repo),
        )
    monitor.register(
        DocumentStatus.EXTRACTED,
        OutputMerger(
            analyses=analyses,
            documents=documents,
            responses=responses,
            outputs=outputs,
            category_priority=settings.category_priority,
        ),
    )

    common = {
        "analyses": analyses,
        "documents": documents,
        "queue": queue_repo,
        "monitor": monitor,
    }
    return {
        Stage.PARSE: ParseStage(
            file_loader=FileLoader(files_root=settings.files_root),
            parser=DocumentParserFactory.create(settings),
            chunks=chunks,
            describer=ImageDescriberFactory.create(settings),
            **common,
        ),
        Stage.EMBED: EmbedStage(
            chunks=chunks,
            embedder=embedder,
            model_selector=model_selector,
            retry_policy=retry_policy,
            batch_size=settings.embedding_batch_size,
            gate_retrieval=settings.gate_retrieval_on_embedded,
            **common,
        ),
        Stage.RETRIEVE: RetrieveStage(
            chunks=chunks,
            retrieval=retrieval,
            planner=planner,
            retriever=HybridRetriever(
                top_k=settings.retrieval_top_k,
                semantic_weight=settings.retrieval_semantic_weight,
            ),
            **common,
        ),
        Stage.EXTRACT: ExtractStage(
            chunks=chunks,
            retrieval=retrieval,
            responses=responses,
            extractor=ExtractorFactory.create(settings),
            retry_policy=retry_policy,
            **common,
        ),
    }


def build_worker(settings: Settings) -> Worker:
    queue_repo = QueueRepository(
        settings.max_message_attempts,
        visibility_timeout_seconds=settings.queue_visibility_timeout_seconds,
    )
    runner = MessageRunner(
        build_stage_workers(settings, queue_repo),
        queue_repo,
        AnalysisRepository(),
        settings,
    )
    return Worker(queue_repo, runner, settings)


def main() -> None:
    """Entry point: initialize pool -> build dependencies -> start worker loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)

    try:
        if settings.db_apply_schema:
            with get_connection() as conn:
                apply_schema(conn)
        worker = build_worker(settings)
        worker.run()
    finally:
        close_pool()


if __name__ == "__main__":
    main()
