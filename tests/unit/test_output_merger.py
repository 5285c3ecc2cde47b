from dataclasses import replace
from datetime import timedelta

import pytest
from fakes import T0, Store

from kpi_worker.pipeline.exceptions import PersistenceError
from kpi_worker.pipeline.models import Document, KpiResponse, KpiValue
from kpi_worker.pipeline.output_merger import (
    MergedKpi,
    OutputMerger,
    category_rank,
    compute_metrics,
    resolve_duplicates,
)
from kpi_worker.pipeline.status import AnalysisStatus, DocumentStatus

PRIORITY = ["annual_report", "sustainability_report", "quarterly_report", "other"]


def _doc(document_id: str, category: str) -> Document:
    return Document(
        document_id=document_id,
        analysis_id="an-1",
        category=category,
        file_name=f"{document_id}.pdf",
    )


def _value(
    confidence: float,
    value: float | None = 100.0,
    kpi_name: str = "revenue",
    detail_level: str | None = "group",
) -> KpiValue:
    return KpiValue(
        kpi_name=kpi_name,
        value=value,
        unit="million",
        currency="EUR",
        confidence=confidence,
        detail_level=detail_level,
        source_page=3,
    )


def _merger(store: Store) -> OutputMerger:
    return OutputMerger(
        analyses=store.analyses,
        documents=store.documents,
        responses=store.responses,
        outputs=store.outputs,
        category_priority=PRIORITY,
    )


class TestResolveDuplicates:
    def test_higher_confidence_wins(self) -> None:
        low = MergedKpi(_doc("doc-a", "annual_report"), _value(0.6, value=1.0))
        high = MergedKpi(_doc("doc-b", "other"), _value(0.9, value=2.0))

        [kept] = resolve_duplicates([low, high], PRIORITY)

        assert kept.value.confidence == 0.9
        assert kept.document.document_id == "doc-b"

    def test_confidence_tie_prefers_category_priority(self) -> None:
        quarterly = MergedKpi(_doc("doc-a", "quarterly_report"), _value(0.8))
        annual = MergedKpi(_doc("doc-b", "annual_report"), _value(0.8))

        [kept] = resolve_duplicates([quarterly, annual], PRIORITY)

        assert kept.document.category == "annual_report"

    def test_full_tie_prefers_earliest_document_id(self) -> None:
        later = MergedKpi(_doc("doc-b", "annual_report"), _value(0.8))
        earlier = MergedKpi(_doc("doc-a", "annual_report"), _value(0.8))

        [kept] = resolve_duplicates([later, earlier], PRIORITY)

        assert kept.document.document_id == "doc-a"

    def test_different_detail_levels_are_not_duplicates(self) -> None:
        group = MergedKpi(_doc("doc-a", "annual_report"), _value(0.8, detail_level="group"))
        segment = MergedKpi(_doc("doc-b", "annual_report"), _value(0.5, detail_level="segment"))

        assert len(resolve_duplicates([group, segment], PRIORITY)) == 2

    def test_unknown_category_ranks_last(self) -> None:
        assert category_rank("press_release", PRIORITY) == len(PRIORITY)
        assert category_rank("annual_report", PRIORITY) == 0


class TestComputeMetrics:
    def test_coverage_confidence_and_duration(self, store: Store) -> None:
        analysis = store.seed(kpis=["revenue", "ebitda"])
        documents = [
            replace(_doc("doc-a", "annual_report"), completed_at=T0 + timedelta(seconds=30)),
            replace(_doc("doc-b", "other"), completed_at=T0 + timedelta(seconds=90)),
        ]
        analysis = replace(analysis, created_at=T0)
        merged = [
            MergedKpi(documents[0], _value(0.9)),
            MergedKpi(documents[1], _value(0.5, detail_level=None)),
        ]

        metrics = compute_metrics(analysis, documents, merged)

        assert metrics["coverage"] == 0.5
        assert metrics["mean_confidence"] == pytest.approx(0.7)
        assert metrics["duration_seconds"] == 90.0

    def test_empty_merge(self, store: Store) -> None:
        analysis = store.seed()
        metrics = compute_metrics(analysis, [], [])
        assert metrics["coverage"] == 0.0
        assert metrics["mean_confidence"] == 0.0
        assert metrics["duration_seconds"] is None


class TestOutputMerger:
    def _seed_extracted(self, store: Store) -> None:
        store.seed(
            documents={"doc-a": "annual_report", "doc-b": "quarterly_report"},
            kpis=["revenue", "ebitda"],
            status=DocumentStatus.EXTRACTING,
        )
        for doc_id in ("doc-a", "doc-b"):
            store.documents.transition(doc_id, DocumentStatus.EXTRACTING, DocumentStatus.EXTRACTED)
        store.responses.save(
            KpiResponse(
                document_id="doc-a",
                values=[_value(0.6, value=1200.0), _value(0.0, value=None, kpi_name="ebitda")],
            )
        )
        store.responses.save(
            KpiResponse(
                document_id="doc-b",
                values=[_value(0.9, value=1234.5), _value(0.4, kpi_name="ebitda", value=88)],
            )
        )

    def test_merges_and_completes(self, store: Store) -> None:
        self._seed_extracted(store)
        analysis = store.analyses.find_by_id("an-1")

        assert _merger(store).merge(analysis) is True

        result, metadata = store.outputs.find("an-1")
        assert store.analysis_status() is AnalysisStatus.COMPLETE
        assert list(result["kpis_by_category"]) == ["quarterly_report"]
        entries = result["kpis_by_category"]["quarterly_report"]
        assert [e["kpi_name"] for e in entries] == ["ebitda", "revenue"]
        revenue = entries[1]
        assert revenue["value"] == 1234.5
        assert revenue["confidence"] == 0.9
        assert revenue["unit"] == "million"
        assert revenue["currency"] == "EUR"
        assert revenue["document_id"] == "doc-b"
        assert metadata["coverage"] == 1.0
        assert metadata["document_count"] == 2
        assert metadata["duration_seconds"] is not None

    def test_no_evidence_entries_are_not_merged(self, store: Store) -> None:
        self._seed_extracted(store)
        store.responses.rows["doc-b"] = KpiResponse(document_id="doc-b", values=[])

        _merger(store).merge(store.analyses.find_by_id("an-1"))

        result, metadata = store.outputs.find("an-1")
        entries = result["kpis_by_category"]["annual_report"]
        assert [e["kpi_name"] for e in entries] == ["revenue"]
        assert metadata["coverage"] == 0.5

    def test_persistence_failure_fails_analysis(self, store: Store) -> None:
        self._seed_extracted(store)
        store.outputs.fail_with = PersistenceError("write failed")

        assert _merger(store).merge(store.analyses.find_by_id("an-1")) is False

        assert store.analysis_status() is AnalysisStatus.FAILED
        assert store.outputs.find("an-1") is None

    def test_missing_response_fails_analysis(self, store: Store) -> None:
        self._seed_extracted(store)
        del store.responses.rows["doc-a"]

        _merger(store).merge(store.analyses.find_by_id("an-1"))

        assert store.analysis_status() is AnalysisStatus.FAILED

    def test_failed_analysis_aborts_merge(self, store: Store) -> None:
        self._seed_extracted(store)
        analysis = store.analyses.find_by_id("an-1")
        store.analyses.mark_failed("an-1", "doc failed")

        assert _merger(store).merge(analysis) is False
        assert store.outputs.find("an-1") is None
