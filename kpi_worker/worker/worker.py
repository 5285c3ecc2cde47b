import time

from kpi_worker.config.settings import Settings
from kpi_worker.database.connection import get_connection
from kpi_worker.database.models import QueueMessageRecord
from kpi_worker.database.repositories.queue_repository import QueueRepository
from kpi_worker.logging.logger import Log
from kpi_worker.pipeline.exceptions import PersistenceError
from kpi_worker.worker.message_runner import MessageRunner


class Worker:
    """Poll loop: sleep -> claim -> dispatch."""

    def __init__(
        self,
        queue_repo: QueueRepository,
        message_runner: MessageRunner,
        settings: Settings,
    ) -> None:
        self._queue_repo = queue_repo
        self._message_runner = message_runner
        self._settings = settings

    def run(self, max_messages: int | None = None) -> None:
        """Main poll loop. Runs forever until interrupted.

        If max_messages is set, stop after processing that many messages (for testing).
        """
        Log.info("Worker started, polling for stage messages")
        handled = 0
        try:
            while max_messages is None or handled < max_messages:
                record = self._try_claim_message()
                if record:
                    self._message_runner.run(record)
                    handled += 1
                else:
                    Log.debug("No messages available, sleeping")
                    time.sleep(self._settings.queue_poll_interval_seconds)
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")

    def _try_claim_message(self) -> QueueMessageRecord | None:
        """Attempt to claim the next message. Store errors are retried on the next poll."""
        try:
            with get_connection() as conn:
                return self._queue_repo.claim_next(conn)
        except PersistenceError as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return None
