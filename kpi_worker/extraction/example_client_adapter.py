"""Example extraction client adapter.

Use this module as a reference when implementing new provider adapters.
Implement BaseExtractionClient and register the provider in ExtractorFactory.
"""

import json
from typing import ClassVar

from kpi_worker.extraction.client_base import BaseExtractionClient


class ExampleClientAdapter(BaseExtractionClient):
    """Example adapter that answers with an empty, schema-valid KPI list.

    No network calls. Every requested KPI therefore ends up as a "no evidence"
    entry, which is enough to drive the pipeline end to end locally.
    """

    DEFAULT_RESPONSE: ClassVar[dict[str, object]] = {"kpis": []}

    def create_chat_completion(
        self,
        *,
        model: str,
        temperature: float,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, object],
    ) -> str:
        _ = model, temperature, system_prompt, user_prompt, json_schema
        return json.dumps(self.DEFAULT_RESPONSE)
