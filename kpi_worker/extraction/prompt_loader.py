import json
from pathlib import Path

from kpi_worker.extraction.exceptions import ExtractionError

_DEFAULT_PROMPT_DIR = Path(__file__).parent / "prompts"
REQUIRED_PLACEHOLDERS = ("{kpi_list}", "{evidence}")


def _read(path: Path | None, default_name: str, label: str) -> str:
    source = path if path is not None else _DEFAULT_PROMPT_DIR / default_name
    try:
        return source.read_text(encoding="utf-8")
    except OSError as exc:
        raise ExtractionError(f"Failed to load {label}: {exc}") from exc


def load_prompt_template(path: Path | None = None) -> str:
    """Load the extraction prompt template.

    Args:
        path: Template file. Defaults to the bundled extraction_prompt.txt.

    Returns:
        The raw template. It must contain the KPI list and evidence
        placeholders; ``{detail_levels}`` and ``{json_schema}`` are optional.

    Raises:
        ExtractionError: if the file cannot be read or lacks a placeholder.
    """
    template = _read(path, "extraction_prompt.txt", "prompt template")
    missing = [p for p in REQUIRED_PLACEHOLDERS if p not in template]
    if missing:
        raise ExtractionError(f"Prompt template is missing placeholders: {', '.join(missing)}")
    return template


def load_json_schema(path: Path | None = None) -> dict[str, object]:
    """Load and parse the response schema, defaulting to the bundled extraction_schema.json.

    Raises:
        ExtractionError: if the file cannot be read or is not a JSON object.
    """
    raw = _read(path, "extraction_schema.json", "JSON schema")
    try:
        schema = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"JSON schema is not valid JSON: {exc}") from exc
    if not isinstance(schema, dict):
        raise ExtractionError("JSON schema must be an object")
    return schema
