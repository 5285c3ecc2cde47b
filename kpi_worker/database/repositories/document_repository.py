from typing import Any

from psycopg.rows import dict_row

from kpi_worker.database.connection import get_connection
from kpi_worker.pipeline.exceptions import AnalysisNotFoundError, RegistrationError
from kpi_worker.pipeline.models import Document
from kpi_worker.pipeline.status import DocumentStatus

_DOCUMENT_COLUMNS = """
    document_id, analysis_id, category, file_name, stage_status,
    detected_language, error_message, created_at, completed_at
"""


def _row_to_document(row: dict[str, Any]) -> Document:
    return Document(
        document_id=row["document_id"],
        analysis_id=row["analysis_id"],
        category=row["category"],
        file_name=row["file_name"],
        stage_status=DocumentStatus(row["stage_status"]),
        detected_language=row["detected_language"],
        error_message=row["error_message"],
        created_at=row["created_at"],
        completed_at=row["completed_at"],
    )


class DocumentRepository:
    """Database operations for the documents table."""

    def register(self, document: Document) -> bool:
        """Insert an uploaded document while holding the analysis row lock.

        Returns False when the analysis already holds expected_document_count documents.

        Raises:
            AnalysisNotFoundError: if the owning analysis does not exist.
            RegistrationError: if the analysis is terminal or the document id is taken.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT status, expected_document_count
                    FROM analyses
                    WHERE analysis_id = %s
                    FOR UPDATE
                    """,
                    (document.analysis_id,),
                )
                row = cur.fetchone()
                if row is None:
                    raise AnalysisNotFoundError(f"Analysis {document.analysis_id} not found")
                status, expected = row
                if status != "processing":
                    raise RegistrationError(
                        f"Analysis {document.analysis_id} is {status}, cannot add documents"
                    )

                cur.execute(
                    "SELECT count(*) FROM documents WHERE analysis_id = %s",
                    (document.analysis_id,),
                )
                count_row = cur.fetchone()
                if count_row is not None and count_row[0] >= expected:
                    conn.rollback()
                    return False

                cur.execute(
                    """
                    INSERT INTO documents
                        (document_id, analysis_id, category, file_name, stage_status)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (document_id) DO NOTHING
                    """,
                    (
                        document.document_id,
                        document.analysis_id,
                        document.category,
                        document.file_name,
                        DocumentStatus.UPLOADED.value,
                    ),
                )
                if cur.rowcount == 0:
                    raise RegistrationError(f"Document {document.document_id} already exists")
            conn.commit()
        return True

    def find_by_id(self, document_id: str) -> Document | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE document_id = %s",
                    (document_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return _row_to_document(row)

    def list_for_analysis(self, analysis_id: str) -> list[Document]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_DOCUMENT_COLUMNS}
                    FROM documents
                    WHERE analysis_id = %s
                    ORDER BY document_id
                    """,
                    (analysis_id,),
                )
                rows = cur.fetchall()
        return [_row_to_document(row) for row in rows]

    def transition(
        self,
        document_id: str,
        current: DocumentStatus,
        target: DocumentStatus,
    ) -> bool:
        """Conditional status write: applies only if the document is still at ``current``
        and its analysis has not failed. Returns False when nothing was updated.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE documents d
                    SET stage_status = %(target)s,
                        updated_at = NOW(),
                        completed_at = CASE
                            WHEN %(completes)s THEN NOW()
                            ELSE d.completed_at
                        END
                    WHERE d.document_id = %(document_id)s
                      AND d.stage_status = %(current)s
                      AND EXISTS (
                          SELECT 1 FROM analyses a
                          WHERE a.analysis_id = d.analysis_id
                            AND a.status <> 'failed'
                          FOR SHARE
                      )
                    """,
                    {
                        "target": target.value,
                        "completes": target is DocumentStatus.EXTRACTED,
                        "current": current.value,
                        "document_id": document_id,
                    },
                )
                changed = cur.rowcount == 1
            conn.commit()
        return changed

    def mark_failed(self, document_id: str, error: str) -> bool:
        """Move a non-terminal document to failed. Returns False if already terminal."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE documents
                    SET stage_status = 'failed', error_message = %s, updated_at = NOW()
                    WHERE document_id = %s
                      AND stage_status NOT IN ('extracted', 'failed')
                    """,
                    (error, document_id),
                )
                changed = cur.rowcount == 1
            conn.commit()
        return changed

    def count_in_statuses(self, analysis_id: str, statuses: list[DocumentStatus]) -> int:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT count(*)
                    FROM documents
                    WHERE analysis_id = %s AND stage_status = ANY(%s)
                    """,
                    (analysis_id, [status.value for status in statuses]),
                )
                row = cur.fetchone()
        return int(row[0]) if row is not None else 0

    def update_detected_language(self, document_id: str, language: str | None) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE documents
                SET detected_language = %s, updated_at = NOW()
                WHERE document_id = %s
                """,
                (language, document_id),
            )
            conn.commit()
