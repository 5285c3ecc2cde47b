from kpi_worker.config.settings import Settings
from kpi_worker.parsing.base import BaseDocumentParser
from kpi_worker.parsing.pdfplumber_adapter import PdfPlumberAdapter
from kpi_worker.parsing.pymupdf_adapter import PyMuPdfAdapter


class DocumentParserFactory:
    """Creates the correct document parser based on settings."""

    ADAPTERS: dict[str, type[PdfPlumberAdapter] | type[PyMuPdfAdapter]] = {
        "pdfplumber": PdfPlumberAdapter,
        "pymupdf": PyMuPdfAdapter,
    }

    @classmethod
    def create(cls, settings: Settings) -> BaseDocumentParser:
        engine = settings.pdf_engine.lower()
        adapter_cls = cls.ADAPTERS.get(engine)
        if adapter_cls is None:
            raise ValueError(
                f"Unknown PDF engine '{engine}'. Choose from: {list(cls.ADAPTERS)}"
            )
        return adapter_cls(max_chunk_chars=settings.chunk_max_chars)
