from typing import Any

import psycopg
from psycopg.rows import dict_row

from kpi_worker.database.connection import get_connection
from kpi_worker.database.models import QueueMessageRecord
from kpi_worker.pipeline.exceptions import PersistenceError
from kpi_worker.pipeline.models import StageMessage


class QueueRepository:
    """Work queue backed by the stage_messages table (at-least-once delivery)."""

    def __init__(self, max_attempts: int, visibility_timeout_seconds: int = 600) -> None:
        self._max_attempts = max_attempts
        self._visibility_timeout_seconds = visibility_timeout_seconds

    def enqueue(self, message: StageMessage) -> int:
        """Append a stage-advance message and return its id."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO stage_messages (analysis_id, document_id, stage_hint)
                    VALUES (%s, %s, %s)
                    RETURNING id
                    """,
                    (message.analysis_id, message.document_id, message.stage_hint.value),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise PersistenceError("Enqueue returned no message id")
        return int(row[0])

    def claim_next(self, conn: psycopg.Connection[Any]) -> QueueMessageRecord | None:
        """Claim the oldest deliverable message using SELECT FOR UPDATE SKIP LOCKED.

        A message left in processing longer than the visibility timeout belongs
        to a crashed worker; it is reclaimed and counts as one more attempt.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT id, analysis_id, document_id, stage_hint, status, attempts
                FROM stage_messages
                WHERE (
                        status = 'pending'
                        OR (
                            status = 'processing'
                            AND locked_at < NOW() - %s * INTERVAL '1 second'
                        )
                      )
                  AND attempts < %s
                ORDER BY created_at, id
                LIMIT 1
                FOR UPDATE SKIP LOCKED
                """,
                (self._visibility_timeout_seconds, self._max_attempts),
            )
            row = cur.fetchone()

        if row is None:
            conn.commit()
            return None

        claimed = conn.execute(
            """
            UPDATE stage_messages
            SET status = 'processing',
                attempts = attempts + CASE WHEN status = 'processing' THEN 1 ELSE 0 END,
                locked_at = NOW(),
                updated_at = NOW()
            WHERE id = %s
            RETURNING attempts
            """,
            (row["id"],),
        ).fetchone()
        conn.commit()

        return QueueMessageRecord(
            id=row["id"],
            analysis_id=row["analysis_id"],
            document_id=row["document_id"],
            stage_hint=row["stage_hint"],
            status="processing",
            attempts=claimed[0] if claimed is not None else row["attempts"],
        )

    def mark_done(self, message_id: int) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE stage_messages
                SET status = 'done', updated_at = NOW()
                WHERE id = %s
                """,
                (message_id,),
            )
            conn.commit()

    def mark_failed(self, message_id: int, error: str) -> None:
        """Dead-letter a message; it is never delivered again."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE stage_messages
                SET status = 'failed', error_message = %s, updated_at = NOW()
                WHERE id = %s
                """,
                (error, message_id),
            )
            conn.commit()

    def release(self, message_id: int, error: str) -> None:
        """Increment attempt count and return the message to pending for redelivery."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE stage_messages
                SET attempts = attempts + 1, status = 'pending', error_message = %s,
                    locked_at = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (error, message_id),
            )
            conn.commit()

    def find_by_id(self, message_id: int) -> QueueMessageRecord | None:
        """Find a message by ID. Useful for tests."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, analysis_id, document_id, stage_hint, status, attempts,
                           error_message, locked_at, created_at, updated_at
                    FROM stage_messages
                    WHERE id = %s
                    """,
                    (message_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return QueueMessageRecord(**row)

    def list_for_document(self, document_id: str) -> list[QueueMessageRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, analysis_id, document_id, stage_hint, status, attempts,
                           error_message, locked_at, created_at, updated_at
                    FROM stage_messages
                    WHERE document_id = %s
                    ORDER BY id
                    """,
                    (document_id,),
                )
                rows = cur.fetchall()
        return [QueueMessageRecord(**row) for row in rows]
