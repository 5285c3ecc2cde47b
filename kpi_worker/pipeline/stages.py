from typing import Any

from kpi_worker.database.repositories.chunk_repository import ChunkRepository
from kpi_worker.database.repositories.kpi_response_repository import KpiResponseRepository
from kpi_worker.database.repositories.retrieval_repository import RetrievalRepository
from kpi_worker.embedding.base import BaseEmbedder
from kpi_worker.embedding.exceptions import EmbeddingError
from kpi_worker.embedding.model_selector import EmbeddingModelSelector
from kpi_worker.extraction.base import BaseKpiExtractor
from kpi_worker.extraction.exceptions import ExtractionValidationError
from kpi_worker.logging.logger import Log
from kpi_worker.parsing.base import BaseDocumentParser
from kpi_worker.parsing.exceptions import DocumentParsingError
from kpi_worker.parsing.models import PageImage
from kpi_worker.pipeline.file_loader import FileLoader
from kpi_worker.pipeline.models import (
    Analysis,
    Chunk,
    Document,
    KpiResponse,
    RetrievalContext,
    StageMessage,
)
from kpi_worker.pipeline.retry import RetryPolicy
from kpi_worker.pipeline.stage_worker import StageWorker
from kpi_worker.pipeline.status import Stage
from kpi_worker.retrieval.hybrid_retriever import HybridRetriever
from kpi_worker.retrieval.query_planner import QueryPlanner
from kpi_worker.vision.base import BaseImageDescriber
from kpi_worker.vision.exceptions import ImageDescriptionError

IMAGE_SECTION = "Image description"


def chunk_id_for(document_id: str, position: int) -> str:
    return f"{document_id}-{position:05d}"


class ParseStage(StageWorker):
    stage = Stage.PARSE

    def __init__(
        self,
        *,
        file_loader: FileLoader,
        parser: BaseDocumentParser,
        chunks: ChunkRepository,
        describer: BaseImageDescriber | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._file_loader = file_loader
        self._parser = parser
        self._chunks = chunks
        self._describer = describer

    def execute(self, analysis: Analysis, document: Document) -> None:
        raw_bytes = self._file_loader.load(document)
        Log.info(f"Loaded {len(raw_bytes)} bytes", document_id=document.document_id)

        result = self._parser.parse(raw_bytes)
        if result.error:
            raise DocumentParsingError(result.error)

        chunks = [
            Chunk(
                chunk_id=chunk_id_for(document.document_id, position),
                document_id=document.document_id,
                position=position,
                text=parsed.text,
                page=parsed.page,
                section=parsed.section,
            )
            for position, parsed in enumerate(result.chunks)
        ]
        chunks.extend(self._describe_images(document, result.images, start=len(chunks)))
        self._chunks.replace_chunks(document.document_id, chunks)

        language = result.detected_language
        self._documents.update_detected_language(document.document_id, language)
        locale = analysis.parameters.locale.lower()
        if language is not None and not locale.startswith(language):
            Log.warning(
                f"Detected language {language} differs from analysis locale {locale}",
                analysis_id=analysis.analysis_id,
                document_id=document.document_id,
            )
        Log.info(f"Parsed {len(chunks)} chunks", document_id=document.document_id)

    def _describe_images(
        self,
        document: Document,
        images: list[PageImage],
        start: int,
    ) -> list[Chunk]:
        if self._describer is None:
            return []
        described: list[Chunk] = []
        for image in images:
            try:
                text = self._describer.describe(image)
            except ImageDescriptionError as exc:
                Log.warning(
                    f"Image description skipped on page {image.page}: {exc}",
                    document_id=document.document_id,
                )
                continue
            if not text.strip():
                continue
            position = start + len(described)
            described.append(
                Chunk(
                    chunk_id=chunk_id_for(document.document_id, position),
                    document_id=document.document_id,
                    position=position,
                    text=text.strip(),
                    page=image.page,
                    section=IMAGE_SECTION,
                )
            )
        return described


class EmbedStage(StageWorker):
    stage = Stage.EMBED

    def __init__(
        self,
        *,
        chunks: ChunkRepository,
        embedder: BaseEmbedder,
        model_selector: EmbeddingModelSelector,
        retry_policy: RetryPolicy,
        batch_size: int = 25,
        gate_retrieval: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._chunks = chunks
        self._embedder = embedder
        self._model_selector = model_selector
        self._retry_policy = retry_policy
        self._batch_size = batch_size
        self._gate_retrieval = gate_retrieval

    def execute(self, analysis: Analysis, document: Document) -> None:
        model = self._model_selector.select(analysis.parameters.locale)
        # chunks embedded by an interrupted earlier attempt are kept
        pending = [
            chunk
            for chunk in self._chunks.list_chunks(document.document_id)
            if chunk.embedding is None
        ]
        for start in range(0, len(pending), self._batch_size):
            batch = pending[start : start + self._batch_size]
            vectors = self._retry_policy.call(
                lambda batch=batch: self._embedder.embed([c.text for c in batch], model),
                description=f"Embedding batch {start // self._batch_size + 1}",
            )
            if len(vectors) != len(batch):
                raise EmbeddingError(
                    f"Expected {len(batch)} vectors, embedder returned {len(vectors)}"
                )
            self._chunks.attach_embeddings(
                document.document_id,
                {chunk.chunk_id: vector for chunk, vector in zip(batch, vectors)},
            )
        Log.info(
            f"Embedded {len(pending)} chunks with {model}",
            document_id=document.document_id,
        )

    def next_message(self, message: StageMessage) -> StageMessage | None:
        if self._gate_retrieval:
            return None
        return super().next_message(message)


class RetrieveStage(StageWorker):
    stage = Stage.RETRIEVE

    def __init__(
        self,
        *,
        chunks: ChunkRepository,
        retrieval: RetrievalRepository,
        planner: QueryPlanner,
        retriever: HybridRetriever,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._chunks = chunks
        self._retrieval = retrieval
        self._planner = planner
        self._retriever = retriever

    def execute(self, analysis: Analysis, document: Document) -> None:
        queries = self._planner.resolve(analysis)
        chunks = self._chunks.list_chunks(document.document_id)
        contexts: list[RetrievalContext] = []
        for query in queries:
            ranked = self._retriever.rank(query, chunks)
            if not ranked:
                Log.warning(
                    "No relevant chunks found",
                    document_id=document.document_id,
                    kpi=query.kpi_name,
                )
            contexts.append(
                RetrievalContext(
                    document_id=document.document_id,
                    kpi_name=query.kpi_name,
                    chunks=ranked,
                )
            )
        self._retrieval.save_contexts(contexts)


class ExtractStage(StageWorker):
    stage = Stage.EXTRACT

    def __init__(
        self,
        *,
        chunks: ChunkRepository,
        retrieval: RetrievalRepository,
        responses: KpiResponseRepository,
        extractor: BaseKpiExtractor,
        retry_policy: RetryPolicy,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._chunks = chunks
        self._retrieval = retrieval
        self._responses = responses
        self._extractor = extractor
        self._retry_policy = retry_policy.retrying(ExtractionValidationError)

    def execute(self, analysis: Analysis, document: Document) -> None:
        if self._responses.find_by_document(document.document_id) is not None:
            Log.info("KPI response already stored", document_id=document.document_id)
            return

        by_id = {chunk.chunk_id: chunk for chunk in self._chunks.list_chunks(document.document_id)}
        evidence: dict[str, list[Chunk]] = {kpi: [] for kpi in analysis.parameters.kpis}
        for context in self._retrieval.list_contexts(document.document_id):
            evidence[context.kpi_name] = [
                by_id[scored.chunk_id] for scored in context.chunks if scored.chunk_id in by_id
            ]

        values = self._retry_policy.call(
            lambda: self._extractor.extract(evidence, analysis.parameters),
            description="KPI extraction",
        )
        self._responses.save(KpiResponse(document_id=document.document_id, values=values))
