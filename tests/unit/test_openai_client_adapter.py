from unittest.mock import MagicMock, patch

import httpx
import openai
import pytest

from kpi_worker.extraction.exceptions import (
    ExtractionError,
    ExtractionNetworkError,
    ExtractionValidationError,
)
from kpi_worker.extraction.openai_client_adapter import OpenAIClientAdapter

_PATCH_TARGET = "kpi_worker.extraction.openai_client_adapter.openai.OpenAI"


def _make_mock_response(content: str | None, finish_reason: str = "stop") -> MagicMock:
    choice = MagicMock()
    choice.message.content = content
    choice.finish_reason = finish_reason
    response = MagicMock()
    response.choices = [choice]
    return response


def _complete(adapter: OpenAIClientAdapter) -> str:
    return adapter.create_chat_completion(
        model="m",
        temperature=0.1,
        system_prompt="system",
        user_prompt="user",
        json_schema={"type": "object"},
    )


def _adapter_with(mock_client: MagicMock, strict_schema: bool = True) -> OpenAIClientAdapter:
    with patch(_PATCH_TARGET, return_value=mock_client):
        return OpenAIClientAdapter(
            api_key="k", timeout_seconds=30, base_url=None, strict_schema=strict_schema
        )


def _rate_limited() -> openai.RateLimitError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.RateLimitError(
        "rate limited", response=httpx.Response(429, request=request), body=None
    )


class TestOpenAIClientAdapter:
    def test_returns_content(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = _make_mock_response('{"kpis": []}')
        assert _complete(_adapter_with(mock_client)) == '{"kpis": []}'

    def test_requests_strict_json_schema(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = _make_mock_response("{}")
        _complete(_adapter_with(mock_client))

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"]["json_schema"]["strict"] is True
        assert kwargs["response_format"]["json_schema"]["schema"] == {"type": "object"}
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}

    def test_passes_base_url_to_client(self) -> None:
        with patch(_PATCH_TARGET) as mock_openai:
            OpenAIClientAdapter(api_key="k", timeout_seconds=12, base_url="http://llm")
        mock_openai.assert_called_once_with(api_key="k", timeout=12, base_url="http://llm")

    def test_raises_error_for_empty_content(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = _make_mock_response(None)
        with pytest.raises(ExtractionError, match="empty response"):
            _complete(_adapter_with(mock_client))

    def test_raises_error_for_no_choices(self) -> None:
        mock_client = MagicMock()
        response = MagicMock()
        response.choices = []
        mock_client.chat.completions.create.return_value = response
        with pytest.raises(ExtractionError, match="no choices"):
            _complete(_adapter_with(mock_client))

    def test_raises_network_error_on_connection_failure(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = openai.APIConnectionError(
            request=MagicMock()
        )
        with pytest.raises(ExtractionNetworkError, match="network error"):
            _complete(_adapter_with(mock_client))

    def test_raises_network_error_on_rate_limit(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = _rate_limited()
        with pytest.raises(ExtractionNetworkError, match="network error"):
            _complete(_adapter_with(mock_client))

    def test_raises_network_error_on_timeout(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = httpx.TimeoutException("timeout")
        with pytest.raises(ExtractionNetworkError, match="network error"):
            _complete(_adapter_with(mock_client))

    def test_other_api_errors_are_permanent(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = openai.APIError(
            message="bad request",
            request=MagicMock(),
            body=None,
        )
        with pytest.raises(ExtractionError, match="API error") as exc_info:
            _complete(_adapter_with(mock_client))
        assert not isinstance(exc_info.value, ExtractionNetworkError)

    def test_json_mode_appends_schema_to_system_prompt(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = _make_mock_response("{}")
        _complete(_adapter_with(mock_client, strict_schema=False))

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        system = kwargs["messages"][0]["content"]
        assert system.startswith("system")
        assert '{"type": "object"}' in system

    def test_truncated_response_is_validation_error(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = _make_mock_response(
            '{"kpis": [', finish_reason="length"
        )
        with pytest.raises(ExtractionValidationError, match="truncated"):
            _complete(_adapter_with(mock_client))

    @pytest.mark.parametrize(("status_code", "expected"), [
        (503, ExtractionNetworkError),
        (408, ExtractionNetworkError),
        (400, ExtractionError),
        (401, ExtractionError),
    ])
    def test_status_errors_are_classified_by_code(
        self, status_code: int, expected: type[Exception]
    ) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = openai.APIStatusError(
            "failed", response=httpx.Response(status_code, request=request), body=None
        )
        with pytest.raises(expected, match=f"HTTP {status_code}") as exc_info:
            _complete(_adapter_with(mock_client))
        if expected is ExtractionError:
            assert not isinstance(exc_info.value, ExtractionNetworkError)
