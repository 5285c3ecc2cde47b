from kpi_worker.pipeline.exceptions import PermanentStageError, TransientStageError


class ExtractionError(PermanentStageError):
    """Raised when KPI extraction fails."""


class ExtractionValidationError(ExtractionError):
    """Raised when the model response violates the expected KPI schema."""


class ExtractionNetworkError(TransientStageError):
    """Raised when the AI provider call fails due to network/infrastructure issues."""
