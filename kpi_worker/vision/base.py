from abc import ABC, abstractmethod

from kpi_worker.parsing.models import PageImage


class BaseImageDescriber(ABC):
    """Contract for best-effort image description adapters."""

    @abstractmethod
    def describe(self, image: PageImage) -> str:
        """Return a textual description of a chart, table or figure.

        Raises:
            ImageDescriptionError: on any failure.
        """
