"""AI-powered KPI extractor."""

import json
from pathlib import Path

from kpi_worker.extraction.base import BaseKpiExtractor
from kpi_worker.extraction.client_base import BaseExtractionClient
from kpi_worker.extraction.exceptions import ExtractionValidationError
from kpi_worker.extraction.prompt_loader import load_json_schema, load_prompt_template
from kpi_worker.extraction.validator import validate_and_build
from kpi_worker.logging.logger import Log
from kpi_worker.pipeline.models import AnalysisParameters, Chunk, KpiValue

DEFAULT_SYSTEM_PROMPT = (
    "You extract financial key performance indicators from report excerpts. "
    "Answer with JSON only."
)


def no_evidence(kpi_name: str) -> KpiValue:
    return KpiValue(kpi_name=kpi_name, value=None, confidence=0.0)


class KpiExtractor(BaseKpiExtractor):
    """Extracts KPI values from retrieved chunks using an AI provider."""

    def __init__(
        self,
        *,
        client: BaseExtractionClient,
        model: str,
        temperature: float = 0.0,
        prompt_template_path: Path | None = None,
        json_schema_path: Path | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = max(0.0, min(0.2, temperature))
        self._system_prompt = system_prompt
        self._prompt_template = load_prompt_template(prompt_template_path)
        self._json_schema_dict = load_json_schema(json_schema_path)
        self._json_schema = json.dumps(self._json_schema_dict, indent=2)

    def extract(
        self,
        evidence: dict[str, list[Chunk]],
        parameters: AnalysisParameters,
    ) -> list[KpiValue]:
        with_context = [kpi for kpi in parameters.kpis if evidence.get(kpi)]
        extracted: list[KpiValue] = []
        if with_context:
            prompt = self._build_prompt(with_context, evidence, parameters.detail_levels)
            Log.debug(f"Extraction prompt:\n{prompt}")

            raw_response = self._call_ai(prompt)
            Log.debug(f"AI raw response:\n{raw_response}")

            parsed = self._parse_json(raw_response)
            extracted = validate_and_build(parsed, with_context, parameters.detail_levels)
        else:
            Log.info("No KPI has retrieval context, skipping the AI call")

        found = {value.kpi_name for value in extracted}
        missing = [no_evidence(kpi) for kpi in parameters.kpis if kpi not in found]
        Log.info(
            f"Extraction complete: {len(found)} of {len(parameters.kpis)} KPIs found"
        )
        return extracted + missing

    def _build_prompt(
        self,
        kpis: list[str],
        evidence: dict[str, list[Chunk]],
        detail_levels: list[str],
    ) -> str:
        return self._prompt_template.format(
            kpi_list="\n".join(f"- {kpi}" for kpi in kpis),
            detail_levels=", ".join(detail_levels) if detail_levels else "(none)",
            evidence=self._format_evidence(kpis, evidence),
            json_schema=self._json_schema,
        )

    @staticmethod
    def _format_evidence(kpis: list[str], evidence: dict[str, list[Chunk]]) -> str:
        blocks: list[str] = []
        for kpi in kpis:
            lines = [f"### {kpi}"]
            for chunk in evidence[kpi]:
                header = f"[page {chunk.page}"
                if chunk.section:
                    header += f" | {chunk.section}"
                lines.append(f"{header}]\n{chunk.text}")
            blocks.append("\n\n".join(lines))
        return "\n\n".join(blocks)

    def _call_ai(self, prompt: str) -> str:
        return self._client.create_chat_completion(
            model=self._model,
            temperature=self._temperature,
            system_prompt=self._system_prompt,
            user_prompt=prompt,
            json_schema=self._json_schema_dict,
        )

    @staticmethod
    def _parse_json(raw: str) -> dict[str, object]:
        cleaned = raw.strip()
        if cleaned.startswith("```"):
            lines = cleaned.splitlines()
            if lines and lines[0].startswith("```"):
                lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            cleaned = "\n".join(lines)

        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise ExtractionValidationError(f"Invalid JSON response: {exc}") from exc

        if not isinstance(parsed, dict):
            raise ExtractionValidationError("JSON response must be an object")
        return parsed
