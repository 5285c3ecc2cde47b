from pathlib import Path

import pytest
from pydantic import ValidationError

from kpi_worker.config.settings import Settings


class TestSettingsDefaults:
    def test_default_app_env(self) -> None:
        s = Settings()
        assert s.app_env == "dev"

    def test_default_db_port(self) -> None:
        s = Settings()
        assert s.db_port == 5432

    def test_default_max_message_attempts(self) -> None:
        s = Settings()
        assert s.max_message_attempts == 3

    def test_default_queue_poll_interval(self) -> None:
        s = Settings()
        assert s.queue_poll_interval_seconds == 5

    def test_default_pdf_engine(self) -> None:
        s = Settings()
        assert s.pdf_engine == "pdfplumber"

    def test_default_retrieval_weights(self) -> None:
        s = Settings()
        assert s.retrieval_top_k == 12
        assert s.retrieval_semantic_weight == 0.7

    def test_default_category_priority(self) -> None:
        s = Settings()
        assert s.category_priority[0] == "annual_report"

    def test_default_files_root(self) -> None:
        s = Settings()
        assert s.files_root == Path("/app/files")

    def test_vision_disabled_by_default(self) -> None:
        s = Settings()
        assert s.vision_provider == "none"


class TestSettingsFromEnv:
    def test_loads_db_host(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_HOST", "db.example.com")
        s = Settings()
        assert s.db_host == "db.example.com"

    def test_loads_max_message_attempts(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MAX_MESSAGE_ATTEMPTS", "5")
        s = Settings()
        assert s.max_message_attempts == 5

    def test_loads_category_priority_as_json(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CATEGORY_PRIORITY", '["sustainability_report", "annual_report"]')
        s = Settings()
        assert s.category_priority == ["sustainability_report", "annual_report"]

    def test_loads_gate_flag(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GATE_RETRIEVAL_ON_EMBEDDED", "false")
        s = Settings()
        assert s.gate_retrieval_on_embedded is False


class TestSettingsValidation:
    def test_invalid_db_port_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_PORT", "not_a_number")
        with pytest.raises(ValidationError):
            Settings()

    @pytest.mark.parametrize("top_k", ["9", "16"])
    def test_top_k_outside_range_raises(
        self, monkeypatch: pytest.MonkeyPatch, top_k: str
    ) -> None:
        monkeypatch.setenv("RETRIEVAL_TOP_K", top_k)
        with pytest.raises(ValidationError):
            Settings()

    def test_semantic_weight_above_one_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RETRIEVAL_SEMANTIC_WEIGHT", "1.5")
        with pytest.raises(ValidationError):
            Settings()

    def test_zero_retry_attempts_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "0")
        with pytest.raises(ValidationError):
            Settings()
