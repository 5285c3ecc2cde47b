from kpi_worker.extraction.base import BaseKpiExtractor
from kpi_worker.extraction.extractor import KpiExtractor
from kpi_worker.extraction.factory import ExtractorFactory

__all__ = ["BaseKpiExtractor", "ExtractorFactory", "KpiExtractor"]
