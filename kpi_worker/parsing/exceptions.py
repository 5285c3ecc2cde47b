from kpi_worker.pipeline.exceptions import DocumentValidationError


class DocumentParsingError(DocumentValidationError):
    """Raised when a document cannot be opened or its structure cannot be read."""
