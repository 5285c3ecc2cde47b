from psycopg.rows import dict_row

from kpi_worker.database.connection import get_connection
from kpi_worker.pipeline.models import Chunk


class ChunkRepository:
    """Database operations for the chunks table."""

    def replace_chunks(self, document_id: str, chunks: list[Chunk]) -> None:
        """Persist the parsed chunk set, discarding any partial set from an earlier attempt."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM chunks WHERE document_id = %s", (document_id,))
                cur.executemany(
                    """
                    INSERT INTO chunks (document_id, chunk_id, position, text, page, section)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    [
                        (
                            document_id,
                            chunk.chunk_id,
                            chunk.position,
                            chunk.text,
                            chunk.page,
                            chunk.section,
                        )
                        for chunk in chunks
                    ],
                )
            conn.commit()

    def list_chunks(self, document_id: str) -> list[Chunk]:
        """Return chunks in document order."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT document_id, chunk_id, position, text, page, section, embedding
                    FROM chunks
                    WHERE document_id = %s
                    ORDER BY position
                    """,
                    (document_id,),
                )
                rows = cur.fetchall()
        return [
            Chunk(
                chunk_id=row["chunk_id"],
                document_id=row["document_id"],
                position=row["position"],
                text=row["text"],
                page=row["page"],
                section=row["section"],
                embedding=list(row["embedding"]) if row["embedding"] is not None else None,
            )
            for row in rows
        ]

    def attach_embeddings(self, document_id: str, vectors: dict[str, list[float]]) -> None:
        """Attach one embedding batch to its chunks."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.executemany(
                    """
                    UPDATE chunks
                    SET embedding = %s
                    WHERE document_id = %s AND chunk_id = %s
                    """,
                    [
                        (vector, document_id, chunk_id)
                        for chunk_id, vector in vectors.items()
                    ],
                )
            conn.commit()
