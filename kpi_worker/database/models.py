from dataclasses import dataclass
from datetime import datetime

from kpi_worker.pipeline.models import StageMessage
from kpi_worker.pipeline.status import Stage


@dataclass
class QueueMessageRecord:
    """Represents a row from the stage_messages table."""

    id: int
    analysis_id: str
    document_id: str
    stage_hint: str
    status: str
    attempts: int
    error_message: str | None = None
    locked_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_message(self) -> StageMessage:
        """Raises ValueError when stage_hint is not a known stage."""
        return StageMessage(
            analysis_id=self.analysis_id,
            document_id=self.document_id,
            stage_hint=Stage(self.stage_hint),
        )
