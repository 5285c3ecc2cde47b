from kpi_worker.pipeline.exceptions import PipelineError


class ImageDescriptionError(PipelineError):
    """Raised when an image cannot be described. Never fails a stage."""
