from abc import ABC, abstractmethod

from kpi_worker.pipeline.models import AnalysisParameters, Chunk, KpiValue


class BaseKpiExtractor(ABC):
    """Contract for all KPI extractors."""

    @abstractmethod
    def extract(
        self,
        evidence: dict[str, list[Chunk]],
        parameters: AnalysisParameters,
    ) -> list[KpiValue]:
        """Extract the requested KPIs from ranked evidence chunks.

        Args:
            evidence: Ranked chunks per requested KPI name. A KPI may map to
                an empty list when retrieval found nothing relevant.
            parameters: The analysis extraction request.

        Returns:
            At least one KpiValue per requested KPI. KPIs without evidence
            are reported with value None and confidence 0.0.

        Raises:
            ExtractionNetworkError: on transient provider failures.
            ExtractionValidationError: when the answer violates the schema.
            ExtractionError: on any other failure.
        """
