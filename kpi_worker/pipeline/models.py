from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from kpi_worker.pipeline.status import AnalysisStatus, DocumentStatus, Stage


@dataclass(frozen=True)
class AnalysisParameters:
    """Extraction request shared by every document of an analysis."""

    kpis: list[str]
    synonyms: dict[str, list[str]] = field(default_factory=dict)
    detail_levels: list[str] = field(default_factory=list)
    locale: str = "en"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kpis": list(self.kpis),
            "synonyms": {name: list(words) for name, words in self.synonyms.items()},
            "detail_levels": list(self.detail_levels),
            "locale": self.locale,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnalysisParameters":
        return cls(
            kpis=list(data.get("kpis", [])),
            synonyms={k: list(v) for k, v in (data.get("synonyms") or {}).items()},
            detail_levels=list(data.get("detail_levels", [])),
            locale=data.get("locale", "en"),
        )


@dataclass(frozen=True)
class Analysis:
    analysis_id: str
    expected_document_count: int
    status: AnalysisStatus
    parameters: AnalysisParameters
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class Document:
    document_id: str
    analysis_id: str
    category: str
    file_name: str
    stage_status: DocumentStatus = DocumentStatus.UPLOADED
    detected_language: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class Chunk:
    """Segment of parsed document text; embedding is attached once by the embed stage."""

    chunk_id: str
    document_id: str
    position: int
    text: str
    page: int
    section: str = ""
    embedding: list[float] | None = None


@dataclass(frozen=True)
class ScoredChunk:
    chunk_id: str
    score: float


@dataclass(frozen=True)
class RetrievalContext:
    """Ranked top-k chunks for one KPI of one document."""

    document_id: str
    kpi_name: str
    chunks: list[ScoredChunk] = field(default_factory=list)


@dataclass(frozen=True)
class KpiQuery:
    """Query variants for one KPI, optionally with one embedding per variant."""

    kpi_name: str
    variants: list[str]
    embeddings: list[list[float]] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kpi_name": self.kpi_name,
            "variants": list(self.variants),
            "embeddings": self.embeddings,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KpiQuery":
        return cls(
            kpi_name=data["kpi_name"],
            variants=list(data["variants"]),
            embeddings=data.get("embeddings"),
        )


@dataclass(frozen=True)
class KpiValue:
    """One extracted KPI. ``value`` is None when no evidence was found."""

    kpi_name: str
    value: float | int | str | None
    unit: str | None = None
    currency: str | None = None
    confidence: float = 0.0
    detail_level: str | None = None
    source_page: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kpi_name": self.kpi_name,
            "value": self.value,
            "unit": self.unit,
            "currency": self.currency,
            "confidence": self.confidence,
            "detail_level": self.detail_level,
            "source_page": self.source_page,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KpiValue":
        return cls(
            kpi_name=data["kpi_name"],
            value=data.get("value"),
            unit=data.get("unit"),
            currency=data.get("currency"),
            confidence=data.get("confidence", 0.0),
            detail_level=data.get("detail_level"),
            source_page=data.get("source_page"),
        )


@dataclass(frozen=True)
class KpiResponse:
    document_id: str
    values: list[KpiValue] = field(default_factory=list)


@dataclass(frozen=True)
class StageMessage:
    """Queue payload. All mutable state lives in the status store."""

    analysis_id: str
    document_id: str
    stage_hint: Stage
