from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg
from psycopg_pool import ConnectionPool

from kpi_worker.config.settings import Settings
from kpi_worker.pipeline.exceptions import PersistenceError

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

_pool: ConnectionPool | None = None


def build_conninfo(settings: Settings) -> str:
    return (
        f"host={settings.db_host} "
        f"port={settings.db_port} "
        f"dbname={settings.db_database} "
        f"user={settings.db_username} "
        f"password={settings.db_password}"
    )


def init_pool(settings: Settings) -> None:
    """Initialize the global connection pool from settings."""
    global _pool  # noqa: PLW0603
    _pool = ConnectionPool(build_conninfo(settings), min_size=1, max_size=10, open=True)


def close_pool() -> None:
    """Close the global connection pool."""
    global _pool  # noqa: PLW0603
    if _pool is not None:
        _pool.close()
        _pool = None


@contextmanager
def get_connection() -> Generator[psycopg.Connection[Any], None, None]:
    """Yield a connection from the pool. Caller manages commit/rollback.

    Driver errors raised while the connection is in use surface as PersistenceError.
    """
    if _pool is None:
        raise RuntimeError("Connection pool not initialized. Call init_pool() first.")
    try:
        with _pool.connection() as conn:
            yield conn
    except psycopg.Error as exc:
        raise PersistenceError(f"Status store error: {exc}") from exc


def apply_schema(conn: psycopg.Connection[Any]) -> None:
    """Create all tables if they do not exist yet."""
    conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
    conn.commit()
