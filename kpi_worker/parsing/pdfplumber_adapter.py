import io

import pdfplumber

from kpi_worker.parsing.base import BaseDocumentParser
from kpi_worker.parsing.chunker import build_parse_result
from kpi_worker.parsing.exceptions import DocumentParsingError
from kpi_worker.parsing.models import ParseResult


class PdfPlumberAdapter(BaseDocumentParser):
    """Parses PDF text page by page using pdfplumber. Images are not extracted."""

    def __init__(self, max_chunk_chars: int = 1200) -> None:
        self._max_chunk_chars = max_chunk_chars

    def parse(self, document_bytes: bytes) -> ParseResult:
        try:
            with pdfplumber.open(io.BytesIO(document_bytes)) as pdf:
                pages = [page.extract_text() or "" for page in pdf.pages]
        except Exception as exc:
            raise DocumentParsingError(f"pdfplumber parsing failed: {exc}") from exc
        return build_parse_result(pages, self._max_chunk_chars)
