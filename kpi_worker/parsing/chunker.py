"""Line-based chunking of page text.

A chunk never spans two pages or two sections. Lines that look like headings
(all caps, or numbered like ``2.1 Revenue``) open a new section and are
carried as the chunk's section label.
"""

import re

from kpi_worker.parsing.language import detect_language
from kpi_worker.parsing.models import PageImage, ParsedChunk, ParseResult

_NUMBERED_HEADING_RE = re.compile(r"^\d+(\.\d+)*\.?\s+[^\W\d_][^\d]*$")
_MAX_HEADING_CHARS = 80


def is_heading(line: str) -> bool:
    stripped = line.strip()
    if not stripped or len(stripped) > _MAX_HEADING_CHARS:
        return False
    if stripped.endswith((".", ",", ";", ":")):
        return False
    if not any(ch.isalpha() for ch in stripped):
        return False
    if stripped.isupper() and len(stripped) > 3:
        return not any(ch.isdigit() for ch in stripped)
    return bool(_NUMBERED_HEADING_RE.match(stripped))


def chunk_pages(pages: list[str], max_chars: int) -> list[ParsedChunk]:
    """Split per-page text into chunks of at most ~max_chars characters."""
    chunks: list[ParsedChunk] = []
    section = ""
    for page_number, page_text in enumerate(pages, start=1):
        buffer: list[str] = []
        size = 0
        for raw_line in page_text.splitlines():
            line = raw_line.strip()
            if not line:
                continue
            if is_heading(line):
                _flush(chunks, buffer, page_number, section)
                buffer, size = [], 0
                section = line
                continue
            for piece in _split_long_line(line, max_chars):
                if buffer and size + len(piece) + 1 > max_chars:
                    _flush(chunks, buffer, page_number, section)
                    buffer, size = [], 0
                buffer.append(piece)
                size += len(piece) + 1
        _flush(chunks, buffer, page_number, section)
    return chunks


def build_parse_result(
    pages: list[str],
    max_chars: int,
    images: list[PageImage] | None = None,
) -> ParseResult:
    chunks = chunk_pages(pages, max_chars)
    if not chunks:
        return ParseResult(images=images or [], error="Document contains no extractable text")
    return ParseResult(
        chunks=chunks,
        detected_language=detect_language(" ".join(pages)),
        images=images or [],
    )


def _split_long_line(line: str, max_chars: int) -> list[str]:
    if len(line) <= max_chars:
        return [line]
    return [line[i : i + max_chars] for i in range(0, len(line), max_chars)]


def _flush(
    chunks: list[ParsedChunk],
    buffer: list[str],
    page: int,
    section: str,
) -> None:
    if buffer:
        chunks.append(ParsedChunk(text="\n".join(buffer), page=page, section=section))
