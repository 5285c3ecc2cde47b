from kpi_worker.config.settings import Settings
from kpi_worker.extraction.base import BaseKpiExtractor
from kpi_worker.extraction.example_client_adapter import ExampleClientAdapter
from kpi_worker.extraction.extractor import KpiExtractor
from kpi_worker.extraction.openai_client_adapter import OpenAIClientAdapter


class ExtractorFactory:
    """Creates the configured KPI extractor."""

    @classmethod
    def create(cls, settings: Settings) -> BaseKpiExtractor:
        """Create a configured extractor from application settings."""
        provider = settings.extraction_provider.lower()
        if provider == "example":
            return KpiExtractor(
                client=ExampleClientAdapter(),
                model="example",
                temperature=0.0,
            )
        client = OpenAIClientAdapter(
            api_key=settings.extraction_openai_api_key,
            timeout_seconds=settings.extraction_timeout_seconds,
            base_url=cls._resolve_base_url(provider, settings),
            strict_schema=provider == "openai",
        )
        return KpiExtractor(
            client=client,
            model=settings.extraction_openai_model_name,
            temperature=settings.extraction_openai_temperature,
        )

    @classmethod
    def _resolve_base_url(cls, provider: str, settings: Settings) -> str | None:
        if provider == "openai":
            return None
        if provider == "openai_compatible":
            url = settings.extraction_openai_compatible_base_url.strip()
            if not url:
                raise ValueError(
                    "extraction_openai_compatible_base_url is required for "
                    "extraction_provider=openai_compatible"
                )
            return url
        raise ValueError(
            f"Unknown extraction provider '{provider}'. "
            "Choose from: ['example', 'openai', 'openai_compatible']"
        )
