from kpi_worker.config.settings import Settings
from kpi_worker.vision.base import BaseImageDescriber
from kpi_worker.vision.openai_describer import OpenAIImageDescriber


class ImageDescriberFactory:
    """Creates the configured image describer, or None when vision is disabled."""

    @classmethod
    def create(cls, settings: Settings) -> BaseImageDescriber | None:
        provider = settings.vision_provider.lower()
        if provider == "none":
            return None
        if provider == "openai":
            return OpenAIImageDescriber(
                api_key=settings.vision_openai_api_key,
                model=settings.vision_openai_model_name,
                timeout_seconds=settings.vision_openai_timeout_seconds,
            )
        raise ValueError(f"Unknown vision provider '{provider}'. Choose from: ['none', 'openai']")
