from typing import Any

from psycopg.types.json import Jsonb

from kpi_worker.database.connection import get_connection


class FinalOutputRepository:
    """Database operations for the final_outputs table."""

    def save(self, analysis_id: str, result: dict[str, Any], metadata: dict[str, Any]) -> None:
        """Persist the consolidated result and its metadata record."""
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO final_outputs (analysis_id, result, metadata)
                VALUES (%s, %s, %s)
                ON CONFLICT (analysis_id) DO NOTHING
                """,
                (analysis_id, Jsonb(result), Jsonb(metadata)),
            )
            conn.commit()

    def find(self, analysis_id: str) -> tuple[dict[str, Any], dict[str, Any]] | None:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT result, metadata FROM final_outputs WHERE analysis_id = %s",
                    (analysis_id,),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return row[0], row[1]
