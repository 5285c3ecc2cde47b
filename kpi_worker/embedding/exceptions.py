from kpi_worker.pipeline.exceptions import PermanentStageError, TransientStageError


class EmbeddingError(PermanentStageError):
    """Raised when the embedding provider rejects the request or answers malformed."""


class EmbeddingNetworkError(TransientStageError):
    """Raised on network, timeout, rate-limit or server-side provider failures."""
