import os
import uuid
from collections.abc import Generator
from typing import Any

import psycopg
import pytest
from seeds import PARAMETERS

from kpi_worker.config.settings import Settings
from kpi_worker.database.connection import (
    apply_schema,
    build_conninfo,
    close_pool,
    get_connection,
    init_pool,
)
from kpi_worker.database.repositories.analysis_repository import AnalysisRepository
from kpi_worker.database.repositories.document_repository import DocumentRepository
from kpi_worker.pipeline.models import Analysis, Document


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "kpi_worker_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        with psycopg.connect(build_conninfo(test_settings), connect_timeout=3):
            pass
    except psycopg.Error as e:
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to point at one")
    init_pool(test_settings)
    try:
        with get_connection() as conn:
            apply_schema(conn)
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def empty_queue(integration_pool: None) -> None:
    """Claims are global, so queue tests start from an empty stage_messages table."""
    with get_connection() as conn:
        conn.execute("DELETE FROM stage_messages")
        conn.commit()


@pytest.fixture
def analysis_id(integration_pool: None) -> Generator[str, None, None]:
    value = f"it-{uuid.uuid4()}"
    yield value
    with get_connection() as conn:
        conn.execute("DELETE FROM stage_messages WHERE analysis_id = %s", (value,))
        conn.execute("DELETE FROM analyses WHERE analysis_id = %s", (value,))
        conn.commit()


@pytest.fixture
def seed_analysis(analysis_id: str) -> Analysis:
    AnalysisRepository().create_if_absent(analysis_id, 2, PARAMETERS)
    analysis = AnalysisRepository().find_by_id(analysis_id)
    assert analysis is not None
    return analysis


@pytest.fixture
def seed_documents(seed_analysis: Analysis) -> list[Document]:
    repo = DocumentRepository()
    documents = [
        Document(
            document_id=f"{seed_analysis.analysis_id}-{suffix}",
            analysis_id=seed_analysis.analysis_id,
            category=category,
            file_name=f"{suffix}.pdf",
        )
        for suffix, category in (("a", "annual_report"), ("b", "sustainability_report"))
    ]
    for document in documents:
        assert repo.register(document) is True
    return documents
