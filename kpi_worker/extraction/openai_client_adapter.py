import json

import httpx
import openai

from kpi_worker.extraction.client_base import BaseExtractionClient
from kpi_worker.extraction.exceptions import (
    ExtractionError,
    ExtractionNetworkError,
    ExtractionValidationError,
)

_RETRYABLE_STATUS_CODES = frozenset({408, 409, 429})


class OpenAIClientAdapter(BaseExtractionClient):
    """Chat-completions client for OpenAI and OpenAI-compatible KPI extraction.

    With ``strict_schema`` the KPI schema is sent as a strict ``json_schema``
    response format. Compatible servers that only honour JSON mode get the
    schema appended to the system prompt instead.
    """

    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int,
        base_url: str | None = None,
        strict_schema: bool = True,
    ) -> None:
        self._client = openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
        )
        self._strict_schema = strict_schema

    def create_chat_completion(
        self,
        *,
        model: str,
        temperature: float,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, object],
    ) -> str:
        if self._strict_schema:
            response_format: dict[str, object] = {
                "type": "json_schema",
                "json_schema": {"name": "kpi_extraction", "strict": True, "schema": json_schema},
            }
        else:
            response_format = {"type": "json_object"}
            system_prompt = (
                f"{system_prompt}\n\nRespond with JSON matching this schema:\n"
                f"{json.dumps(json_schema)}"
            )

        try:
            response = self._client.chat.completions.create(
                model=model,
                temperature=temperature,
                response_format=response_format,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ExtractionNetworkError(f"AI provider network error: {exc}") from exc
        except openai.APIStatusError as exc:
            if exc.status_code in _RETRYABLE_STATUS_CODES or exc.status_code >= 500:
                raise ExtractionNetworkError(
                    f"AI provider network error (HTTP {exc.status_code}): {exc}"
                ) from exc
            raise ExtractionError(f"AI provider API error (HTTP {exc.status_code}): {exc}") from exc
        except openai.APIError as exc:
            raise ExtractionError(f"AI provider API error: {exc}") from exc

        if not response.choices:
            raise ExtractionError("AI returned no choices")
        choice = response.choices[0]
        # A length cut leaves truncated JSON; another attempt may fit.
        if choice.finish_reason == "length":
            raise ExtractionValidationError("AI response was truncated at the token limit")
        if choice.message.content is None:
            raise ExtractionError("AI returned empty response")
        return choice.message.content
