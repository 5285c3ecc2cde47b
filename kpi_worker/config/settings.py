from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "kpi_worker"
    db_username: str = "kpi_worker"
    db_password: str = "secret"
    db_apply_schema: bool = True

    max_message_attempts: int = 3
    queue_poll_interval_seconds: int = 5
    queue_visibility_timeout_seconds: int = Field(default=600, ge=1)

    retry_max_attempts: int = Field(default=4, ge=1)
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0
    retry_jitter_seconds: float = 0.5

    files_root: Path = Path("/app/files")
    max_documents_per_analysis: int = 3

    pdf_engine: str = "pdfplumber"
    chunk_max_chars: int = 1200

    vision_provider: str = "none"
    vision_openai_api_key: str = ""
    vision_openai_model_name: str = "gpt-4o-mini"
    vision_openai_timeout_seconds: int = 30

    embedding_provider: str = "openai"
    embedding_batch_size: int = Field(default=25, ge=1)
    embedding_model_name: str = "text-embedding-3-small"
    embedding_multilingual_model_name: str = "text-embedding-3-large"
    embedding_openai_api_key: str = ""
    embedding_openai_compatible_base_url: str = ""
    embedding_timeout_seconds: int = 30

    extraction_provider: str = "openai"
    extraction_openai_api_key: str = ""
    extraction_openai_model_name: str = "gpt-4o-mini"
    extraction_openai_compatible_base_url: str = ""
    extraction_openai_temperature: float = 0.0
    extraction_timeout_seconds: int = 60

    retrieval_top_k: int = Field(default=12, ge=10, le=15)
    retrieval_semantic_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    gate_retrieval_on_embedded: bool = True

    category_priority: list[str] = Field(
        default_factory=lambda: [
            "annual_report",
            "sustainability_report",
            "quarterly_report",
            "other",
        ]
    )
