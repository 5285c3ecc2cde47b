class PipelineError(Exception):
    """Base exception for all pipeline-related errors."""


class PermanentStageError(PipelineError):
    """Raised when a stage cannot succeed for this document; fails the analysis."""


class DocumentValidationError(PermanentStageError):
    """Raised when input is malformed or corrupt."""


class RetryExhaustedError(PermanentStageError):
    """Raised when a retried external call ran out of attempts."""

    def __init__(self, description: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"{description} failed after {attempts} attempts: {last_error}")
        self.description = description
        self.attempts = attempts
        self.last_error = last_error


class TransientStageError(PipelineError):
    """Raised on network, timeout or rate-limit failures of an external call."""


class PersistenceError(PipelineError):
    """Raised when the status store cannot read or write."""


class IllegalTransitionError(PipelineError):
    """Raised when a status transition is not allowed by the transition table."""


class AnalysisNotFoundError(PipelineError):
    """Raised when an analysis cannot be found in the status store."""


class DocumentNotFoundError(PipelineError):
    """Raised when a document cannot be found in the status store."""


class RegistrationError(PipelineError):
    """Raised when a document cannot be registered to an analysis."""


class ResultNotReadyError(PipelineError):
    """Raised when the final result is requested before the analysis completed."""


class FileReadError(DocumentValidationError):
    """Raised when a document's raw file is missing or unreadable."""
