from abc import ABC, abstractmethod

from kpi_worker.parsing.models import ParseResult


class BaseDocumentParser(ABC):
    """Contract for all document parsing adapters."""

    @abstractmethod
    def parse(self, document_bytes: bytes) -> ParseResult:
        """Split a document into page-aware chunks.

        Args:
            document_bytes: Raw file content.

        Returns:
            ParseResult with chunks, detected language and embedded images.

        Raises:
            DocumentParsingError: if the document cannot be opened.
        """
