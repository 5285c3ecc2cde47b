from unittest.mock import MagicMock, patch

from kpi_worker.config.settings import Settings
from kpi_worker.main import build_stage_workers, build_worker, main
from kpi_worker.pipeline.stages import EmbedStage, ExtractStage, ParseStage, RetrieveStage
from kpi_worker.pipeline.status import DocumentStatus, Stage
from kpi_worker.worker.worker import Worker


def _settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "embedding_provider": "example",
        "extraction_provider": "example",
        "vision_provider": "none",
    }
    values.update(overrides)
    return Settings(**values)


class TestBuildStageWorkers:
    def test_one_worker_per_stage(self) -> None:
        workers = build_stage_workers(_settings(), MagicMock())

        assert list(workers) == list(Stage)
        assert isinstance(workers[Stage.PARSE], ParseStage)
        assert isinstance(workers[Stage.EMBED], EmbedStage)
        assert isinstance(workers[Stage.RETRIEVE], RetrieveStage)
        assert isinstance(workers[Stage.EXTRACT], ExtractStage)

    def test_workers_share_one_monitor(self) -> None:
        workers = build_stage_workers(_settings(), MagicMock())
        monitors = {id(worker._monitor) for worker in workers.values()}
        assert len(monitors) == 1

    def test_gate_registers_embedded_milestone(self) -> None:
        workers = build_stage_workers(_settings(gate_retrieval_on_embedded=True), MagicMock())
        actions = workers[Stage.PARSE]._monitor._actions
        assert set(actions) == {DocumentStatus.EMBEDDED, DocumentStatus.EXTRACTED}

    def test_without_gate_only_merge_is_registered(self) -> None:
        workers = build_stage_workers(_settings(gate_retrieval_on_embedded=False), MagicMock())
        actions = workers[Stage.PARSE]._monitor._actions
        assert set(actions) == {DocumentStatus.EXTRACTED}


class TestMain:
    def test_build_worker(self) -> None:
        assert isinstance(build_worker(_settings()), Worker)

    def test_runs_worker_and_closes_pool(self) -> None:
        with (
            patch("kpi_worker.main.Settings", return_value=_settings(db_apply_schema=False)),
            patch("kpi_worker.main.init_pool") as mock_init,
            patch("kpi_worker.main.close_pool") as mock_close,
            patch("kpi_worker.main.build_worker") as mock_build,
            patch("kpi_worker.main.Log"),
        ):
            main()

        mock_init.assert_called_once()
        mock_build.return_value.run.assert_called_once_with()
        mock_close.assert_called_once()

    def test_applies_schema_when_enabled(self) -> None:
        with (
            patch("kpi_worker.main.Settings", return_value=_settings(db_apply_schema=True)),
            patch("kpi_worker.main.init_pool"),
            patch("kpi_worker.main.close_pool"),
            patch("kpi_worker.main.get_connection") as mock_conn,
            patch("kpi_worker.main.apply_schema") as mock_apply,
            patch("kpi_worker.main.build_worker"),
            patch("kpi_worker.main.Log"),
        ):
            main()

        mock_apply.assert_called_once_with(mock_conn.return_value.__enter__.return_value)
