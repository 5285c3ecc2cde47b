from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from kpi_worker.database.connection import get_connection
from kpi_worker.pipeline.models import KpiResponse, KpiValue


class KpiResponseRepository:
    """Database operations for the kpi_responses table."""

    def save(self, response: KpiResponse) -> None:
        """Write the document's extraction once; later writes are ignored."""
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO kpi_responses (document_id, kpi_values)
                VALUES (%s, %s)
                ON CONFLICT (document_id) DO NOTHING
                """,
                (response.document_id, Jsonb([value.to_dict() for value in response.values])),
            )
            conn.commit()

    def find_by_document(self, document_id: str) -> KpiResponse | None:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT kpi_values FROM kpi_responses WHERE document_id = %s",
                    (document_id,),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return KpiResponse(
            document_id=document_id,
            values=[KpiValue.from_dict(item) for item in row[0]],
        )

    def list_for_analysis(self, analysis_id: str) -> list[KpiResponse]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT r.document_id, r.kpi_values
                    FROM kpi_responses r
                    JOIN documents d ON d.document_id = r.document_id
                    WHERE d.analysis_id = %s
                    ORDER BY r.document_id
                    """,
                    (analysis_id,),
                )
                rows = cur.fetchall()
        return [
            KpiResponse(
                document_id=row["document_id"],
                values=[KpiValue.from_dict(item) for item in row["kpi_values"]],
            )
            for row in rows
        ]
