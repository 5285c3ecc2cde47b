from dataclasses import dataclass, field


@dataclass(frozen=True)
class ParsedChunk:
    """Chunk text with the page and section it came from."""

    text: str
    page: int
    section: str = ""


@dataclass(frozen=True)
class PageImage:
    page: int
    data: bytes
    extension: str = "png"


@dataclass
class ParseResult:
    """Output of the parsing collaborator. ``error`` is set when the document
    opened but yielded nothing usable.
    """

    chunks: list[ParsedChunk] = field(default_factory=list)
    detected_language: str | None = None
    images: list[PageImage] = field(default_factory=list)
    error: str | None = None
