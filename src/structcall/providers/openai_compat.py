"""Completion service for OpenAI-compatible chat endpoints."""

from __future__ import annotations

import json
import os
from typing import TYPE_CHECKING, Any

import httpx

from structcall.observability.logging import get_logger
from structcall.providers.base import (
    CompletionResponse,
    Message,
    ServiceConnectionError,
    ServiceError,
    ServiceRateLimitError,
    ServiceResponseError,
)
from structcall.tools import ToolCall

if TYPE_CHECKING:
    from structcall.schema.response_format import ResponseFormat
    from structcall.tools import ToolDefinition

log = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT = 300.0

_TOOL_CHOICE_MODES = frozenset({"auto", "required", "none"})


def _tool_choice_payload(tool_choice: str) -> str | dict[str, Any]:
    if tool_choice in _TOOL_CHOICE_MODES:
        return tool_choice
    return {"type": "function", "function": {"name": tool_choice}}


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class OpenAICompatibleService:
    """Completion service speaking the OpenAI ``/chat/completions`` protocol.

    Works with OpenAI itself and with compatible servers (Azure-style
    gateways, vLLM, Ollama's OpenAI endpoint, ...).

    Attributes:
        default_model: Default model to use for completions.
    """

    def __init__(
        self,
        api_key: str | None = None,
        default_model: str = DEFAULT_MODEL,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        api_key_env: str = "OPENAI_API_KEY",
        name: str = "openai",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            api_key: API key. Defaults to the ``api_key_env`` environment variable.
            default_model: Default model for completions.
            base_url: API base URL. Custom endpoints may run without a key.
            timeout: Request timeout in seconds.
            api_key_env: Environment variable holding the key.
            name: Service name used in errors and logs.
            transport: Optional httpx transport (e.g. ``httpx.MockTransport`` in tests).

        Raises:
            ServiceError: If no key is available for the default OpenAI endpoint.
        """
        self._name = name
        self._api_key = api_key or os.getenv(api_key_env)
        self._base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        if not self._api_key and base_url is None:
            raise ServiceError(
                name,
                f"API key required. Set {api_key_env} environment variable.",
                status="missing_api_key",
            )

        self._default_model = default_model
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers, transport=transport)

    @property
    def default_model(self) -> str:
        """Return the default model for this service."""
        return self._default_model

    @property
    def base_url(self) -> str:
        return self._base_url

    def build_payload(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        response_format: ResponseFormat | None = None,
        tool_choice: str | None = None,
        model: str | None = None,
    ) -> dict[str, Any]:
        """Build the JSON request body for a completion call."""
        payload: dict[str, Any] = {
            "model": model or self._default_model,
            "messages": messages,
        }
        if tools:
            payload["tools"] = [tool.to_wire() for tool in tools]
        if tool_choice is not None:
            payload["tool_choice"] = _tool_choice_payload(tool_choice)
        if response_format is not None:
            payload["response_format"] = response_format.to_wire()
        return payload

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        response_format: ResponseFormat | None = None,
        tool_choice: str | None = None,
        model: str | None = None,
    ) -> CompletionResponse:
        """Generate a completion from the given messages.

        Raises:
            ServiceConnectionError: If the connection fails, times out or breaks
                mid-request.
            ServiceRateLimitError: If rate limit is exceeded.
            ServiceResponseError: If the response cannot be interpreted.
            ServiceError: For other API errors.
        """
        payload = self.build_payload(messages, tools, response_format, tool_choice, model)
        url = f"{self._base_url}/chat/completions"
        log.debug(
            "completion_request",
            model=payload["model"],
            messages=len(messages),
            tools=len(tools or []),
        )

        try:
            response = await self._client.post(url, json=payload)
        except httpx.ConnectError as e:
            raise ServiceConnectionError(
                self._name, f"Failed to connect to {self._base_url}: {e}"
            ) from e
        except httpx.TimeoutException as e:
            raise ServiceConnectionError(self._name, f"Request timed out: {e}") from e
        except httpx.TransportError as e:
            raise ServiceConnectionError(
                self._name, f"Transport error talking to {self._base_url}: {e!r}"
            ) from e

        if response.status_code == 429:
            raise ServiceRateLimitError(
                self._name,
                "Rate limit exceeded. Please wait before retrying.",
                retry_after=_retry_after(response),
            )

        if response.status_code == 401:
            raise ServiceError(self._name, "Invalid API key.", status="401")

        if response.status_code != 200:
            raise ServiceError(
                self._name,
                f"API error (status {response.status_code}): {response.text}",
                status=str(response.status_code),
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ServiceResponseError(self._name, f"Invalid JSON response: {e}") from e

        return self._parse_response(data, payload["model"])

    def _parse_response(self, data: dict[str, Any], model: str) -> CompletionResponse:
        choices = data.get("choices") or []
        if not choices:
            raise ServiceResponseError(self._name, "Empty response from API")

        choice = choices[0]
        message = choice.get("message") or {}
        content = message.get("content") or ""
        finish_reason = choice.get("finish_reason") or "unknown"

        usage = data.get("usage") or {}
        tokens_used = usage.get("total_tokens") or 0

        tool_calls = [self._parse_tool_call(raw) for raw in message.get("tool_calls") or []]

        return CompletionResponse(
            content=content,
            model=data.get("model", model),
            tokens_used=tokens_used,
            finish_reason=finish_reason,
            tool_calls=tool_calls or None,
        )

    def _parse_tool_call(self, raw: dict[str, Any]) -> ToolCall:
        function = raw.get("function") or {}
        call_id = raw.get("id")
        name = function.get("name")
        if not call_id or not name:
            raise ServiceResponseError(self._name, f"Malformed tool call in response: {raw!r}")

        arguments = function.get("arguments", "")
        if not isinstance(arguments, str):
            # Some compatible servers send the object instead of its serialization
            arguments = json.dumps(arguments)
        return ToolCall(id=call_id, name=name, arguments=arguments)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> OpenAICompatibleService:
        """Enter async context."""
        return self

    async def __aexit__(self, *_: object) -> None:
        """Exit async context and close client."""
        await self.close()
