"""Validates the raw model answer against the requested KPIs and detail levels."""

from typing import Any

from kpi_worker.extraction.exceptions import ExtractionValidationError
from kpi_worker.pipeline.models import KpiValue


def validate_and_build(
    data: dict[str, Any],
    kpis: list[str],
    detail_levels: list[str],
) -> list[KpiValue]:
    """Validate raw parsed JSON and build the KPI values it reports.

    Raises:
        ExtractionValidationError: on any validation failure.
    """
    if "kpis" not in data:
        raise ExtractionValidationError("Missing required top-level field: kpis")
    raw_items = data["kpis"]
    if not isinstance(raw_items, list):
        raise ExtractionValidationError("'kpis' must be a list")

    requested = set(kpis)
    allowed_levels = set(detail_levels)
    seen: set[tuple[str, str | None]] = set()
    values: list[KpiValue] = []
    for i, item in enumerate(raw_items):
        value = _build_value(item, i, requested, allowed_levels)
        key = (value.kpi_name, value.detail_level)
        if key in seen:
            raise ExtractionValidationError(
                f"Duplicate KPI entry: {value.kpi_name} (detail level {value.detail_level!r})"
            )
        seen.add(key)
        values.append(value)
    return values


def _build_value(
    raw: Any,
    index: int,
    requested: set[str],
    allowed_levels: set[str],
) -> KpiValue:
    if not isinstance(raw, dict):
        raise ExtractionValidationError(f"KPI at index {index} must be an object")

    name = raw.get("kpi_name")
    if not name or not isinstance(name, str):
        raise ExtractionValidationError(
            f"KPI at index {index}: 'kpi_name' must be a non-empty string"
        )
    if name not in requested:
        raise ExtractionValidationError(f"KPI at index {index}: '{name}' was not requested")

    level = raw.get("detail_level")
    if level is not None and (not isinstance(level, str) or level not in allowed_levels):
        raise ExtractionValidationError(
            f"KPI at index {index}: detail level {level!r} was not requested"
        )

    value = raw.get("value")
    if isinstance(value, bool) or not isinstance(value, (int, float, str, type(None))):
        raise ExtractionValidationError(
            f"KPI at index {index}: 'value' must be a number, a string or null"
        )

    confidence = raw.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise ExtractionValidationError(f"KPI at index {index}: 'confidence' must be a number")
    if not 0.0 <= confidence <= 1.0:
        raise ExtractionValidationError(
            f"KPI at index {index}: 'confidence' must be within [0, 1], got {confidence}"
        )

    page = raw.get("source_page")
    if page is not None and (isinstance(page, bool) or not isinstance(page, int)):
        raise ExtractionValidationError(
            f"KPI at index {index}: 'source_page' must be an integer or null"
        )

    return KpiValue(
        kpi_name=name,
        value=value,
        unit=_optional_str(raw, "unit", index),
        currency=_optional_str(raw, "currency", index),
        confidence=float(confidence),
        detail_level=level,
        source_page=page,
    )


def _optional_str(raw: dict[str, Any], key: str, index: int) -> str | None:
    value = raw.get(key)
    if value is not None and not isinstance(value, str):
        raise ExtractionValidationError(f"KPI at index {index}: '{key}' must be a string or null")
    return value
