import pytest

from kpi_worker.config.settings import Settings
from kpi_worker.parsing.factory import DocumentParserFactory
from kpi_worker.parsing.pdfplumber_adapter import PdfPlumberAdapter
from kpi_worker.parsing.pymupdf_adapter import PyMuPdfAdapter


class TestDocumentParserFactory:
    def test_creates_pdfplumber(self) -> None:
        parser = DocumentParserFactory.create(Settings(pdf_engine="pdfplumber"))
        assert isinstance(parser, PdfPlumberAdapter)

    def test_creates_pymupdf_case_insensitive(self) -> None:
        parser = DocumentParserFactory.create(Settings(pdf_engine="PyMuPDF"))
        assert isinstance(parser, PyMuPdfAdapter)

    def test_unknown_engine_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown PDF engine"):
            DocumentParserFactory.create(Settings(pdf_engine="tika"))
