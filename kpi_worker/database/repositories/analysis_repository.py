from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from kpi_worker.database.connection import get_connection
from kpi_worker.pipeline.models import Analysis, AnalysisParameters
from kpi_worker.pipeline.status import AnalysisStatus


def _row_to_analysis(row: dict[str, Any]) -> Analysis:
    return Analysis(
        analysis_id=row["analysis_id"],
        expected_document_count=row["expected_document_count"],
        status=AnalysisStatus(row["status"]),
        parameters=AnalysisParameters.from_dict(row["parameters"]),
        error_message=row["error_message"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class AnalysisRepository:
    """Database operations for the analyses and analysis_milestones tables."""

    def create_if_absent(
        self,
        analysis_id: str,
        expected_document_count: int,
        parameters: AnalysisParameters,
    ) -> bool:
        """Insert the analysis in 'processing'. Returns False if it already existed."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO analyses (analysis_id, expected_document_count, parameters)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (analysis_id) DO NOTHING
                    """,
                    (analysis_id, expected_document_count, Jsonb(parameters.to_dict())),
                )
                created = cur.rowcount == 1
            conn.commit()
        return created

    def find_by_id(self, analysis_id: str) -> Analysis | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT analysis_id, expected_document_count, status, parameters,
                           error_message, created_at, updated_at
                    FROM analyses
                    WHERE analysis_id = %s
                    """,
                    (analysis_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return _row_to_analysis(row)

    def mark_failed(self, analysis_id: str, error: str) -> bool:
        """processing -> failed. First writer wins; later calls are no-ops returning False."""
        return self._finish(analysis_id, AnalysisStatus.FAILED, error)

    def mark_complete(self, analysis_id: str) -> bool:
        """processing -> complete. Returns False if the analysis is already terminal."""
        return self._finish(analysis_id, AnalysisStatus.COMPLETE, None)

    def _finish(self, analysis_id: str, status: AnalysisStatus, error: str | None) -> bool:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE analyses
                    SET status = %s, error_message = %s, updated_at = NOW()
                    WHERE analysis_id = %s AND status = 'processing'
                    """,
                    (status.value, error, analysis_id),
                )
                changed = cur.rowcount == 1
            conn.commit()
        return changed

    def claim_milestone(self, analysis_id: str, milestone: str) -> bool:
        """Claim the per-analysis milestone marker.

        Returns True while the milestone action has not completed, so a
        redelivered event can run an action that crashed or raised. Returns
        False for every caller once complete_milestone has been recorded.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO analysis_milestones (analysis_id, milestone)
                    VALUES (%s, %s)
                    ON CONFLICT (analysis_id, milestone) DO UPDATE
                    SET triggered_at = NOW()
                    WHERE analysis_milestones.completed_at IS NULL
                    """,
                    (analysis_id, milestone),
                )
                claimed = cur.rowcount == 1
            conn.commit()
        return claimed

    def complete_milestone(self, analysis_id: str, milestone: str) -> bool:
        """Record that the milestone action finished. Returns False if already recorded."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE analysis_milestones
                    SET completed_at = NOW()
                    WHERE analysis_id = %s AND milestone = %s AND completed_at IS NULL
                    """,
                    (analysis_id, milestone),
                )
                completed = cur.rowcount == 1
            conn.commit()
        return completed
