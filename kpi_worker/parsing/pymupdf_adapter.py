from typing import Any

import pymupdf

from kpi_worker.logging.logger import Log
from kpi_worker.parsing.base import BaseDocumentParser
from kpi_worker.parsing.chunker import build_parse_result
from kpi_worker.parsing.exceptions import DocumentParsingError
from kpi_worker.parsing.models import PageImage, ParseResult

_MIN_IMAGE_BYTES = 10_000
_MAX_IMAGES = 20


class PyMuPdfAdapter(BaseDocumentParser):
    """Parses PDF text and embedded images using PyMuPDF."""

    def __init__(self, max_chunk_chars: int = 1200) -> None:
        self._max_chunk_chars = max_chunk_chars

    def parse(self, document_bytes: bytes) -> ParseResult:
        try:
            with pymupdf.open(stream=document_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                pages = [page.get_text() for page in doc]
                images = self._extract_images(doc)
        except Exception as exc:
            raise DocumentParsingError(f"pymupdf parsing failed: {exc}") from exc
        return build_parse_result(pages, self._max_chunk_chars, images)

    def _extract_images(self, doc: Any) -> list[PageImage]:
        images: list[PageImage] = []
        for page_number, page in enumerate(doc, start=1):
            for info in page.get_images(full=True):
                if len(images) >= _MAX_IMAGES:
                    Log.debug(f"Image limit {_MAX_IMAGES} reached, skipping the rest")
                    return images
                extracted = doc.extract_image(info[0])
                data = extracted.get("image", b"")
                if len(data) < _MIN_IMAGE_BYTES:
                    continue
                images.append(
                    PageImage(page=page_number, data=data, extension=extracted.get("ext", "png"))
                )
        return images
