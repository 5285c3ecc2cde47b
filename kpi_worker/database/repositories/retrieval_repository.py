from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from kpi_worker.database.connection import get_connection
from kpi_worker.pipeline.models import KpiQuery, RetrievalContext, ScoredChunk


class RetrievalRepository:
    """Database operations for the retrieval_queries and retrieval_contexts tables."""

    def save_query_plan(self, analysis_id: str, queries: list[KpiQuery]) -> None:
        """Store the per-analysis query plan. The first stored plan wins."""
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO retrieval_queries (analysis_id, queries)
                VALUES (%s, %s)
                ON CONFLICT (analysis_id) DO NOTHING
                """,
                (analysis_id, Jsonb([query.to_dict() for query in queries])),
            )
            conn.commit()

    def find_query_plan(self, analysis_id: str) -> list[KpiQuery] | None:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT queries FROM retrieval_queries WHERE analysis_id = %s",
                    (analysis_id,),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return [KpiQuery.from_dict(item) for item in row[0]]

    def save_contexts(self, contexts: list[RetrievalContext]) -> None:
        """Write retrieval contexts once; rewrites after redelivery are ignored."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.executemany(
                    """
                    INSERT INTO retrieval_contexts (document_id, kpi_name, ranked_chunks)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (document_id, kpi_name) DO NOTHING
                    """,
                    [
                        (
                            context.document_id,
                            context.kpi_name,
                            Jsonb(
                                [
                                    {"chunk_id": c.chunk_id, "score": c.score}
                                    for c in context.chunks
                                ]
                            ),
                        )
                        for context in contexts
                    ],
                )
            conn.commit()

    def list_contexts(self, document_id: str) -> list[RetrievalContext]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT document_id, kpi_name, ranked_chunks
                    FROM retrieval_contexts
                    WHERE document_id = %s
                    ORDER BY kpi_name
                    """,
                    (document_id,),
                )
                rows = cur.fetchall()
        return [
            RetrievalContext(
                document_id=row["document_id"],
                kpi_name=row["kpi_name"],
                chunks=[
                    ScoredChunk(chunk_id=item["chunk_id"], score=item["score"])
                    for item in row["ranked_chunks"]
                ],
            )
            for row in rows
        ]
