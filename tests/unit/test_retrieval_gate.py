from unittest.mock import MagicMock

from fakes import Store

from kpi_worker.pipeline.models import StageMessage
from kpi_worker.pipeline.retrieval_gate import RetrievalGate
from kpi_worker.pipeline.status import DocumentStatus, Stage


class TestRetrievalGate:
    def test_resolves_plan_then_releases_embedded_documents(self, store: Store) -> None:
        analysis = store.seed(
            documents={"doc-a": "annual_report", "doc-b": "other"},
            status=DocumentStatus.EMBEDDED,
        )
        planner = MagicMock()
        planner.resolve.return_value = []

        RetrievalGate(planner=planner, documents=store.documents, queue=store.queue)(analysis)

        planner.resolve.assert_called_once_with(analysis)
        assert store.queue.messages == [
            StageMessage(analysis_id="an-1", document_id="doc-a", stage_hint=Stage.RETRIEVE),
            StageMessage(analysis_id="an-1", document_id="doc-b", stage_hint=Stage.RETRIEVE),
        ]

    def test_skips_documents_already_past_embedded(self, store: Store) -> None:
        analysis = store.seed(
            documents={"doc-a": "annual_report", "doc-b": "other"},
            status=DocumentStatus.EMBEDDED,
        )
        store.documents.transition("doc-b", DocumentStatus.EMBEDDED, DocumentStatus.RETRIEVING)

        RetrievalGate(planner=MagicMock(), documents=store.documents, queue=store.queue)(analysis)

        assert [m.document_id for m in store.queue.messages] == ["doc-a"]
