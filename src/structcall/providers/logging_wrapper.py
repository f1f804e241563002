"""Logging wrapper for completion services."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from structcall.observability import CompletionLogger
    from structcall.providers.base import CompletionResponse, CompletionService, Message
    from structcall.schema.response_format import ResponseFormat
    from structcall.tools import ToolDefinition


def _response_format_label(response_format: ResponseFormat | None) -> str | None:
    if response_format is None:
        return None
    if response_format.name:
        return f"{response_format.type}:{response_format.name}"
    return str(response_format.type)


class LoggingService:
    """Wrapper that logs all completion calls to the CompletionLogger.

    Delegates to an underlying service and records request/response details,
    including any tool calls, to the configured logger.

    Attributes:
        default_model: The model name from the wrapped service.
    """

    def __init__(
        self,
        service: CompletionService,
        logger: CompletionLogger,
        **metadata: Any,
    ) -> None:
        """Initialize logging wrapper.

        Args:
            service: Underlying completion service to wrap.
            logger: CompletionLogger instance for recording calls.
            **metadata: Extra fields stored with every entry (e.g. a session id).
        """
        self._service = service
        self._logger = logger
        self._metadata = metadata

    @property
    def default_model(self) -> str:
        """Return the default model from wrapped service."""
        return self._service.default_model

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        response_format: ResponseFormat | None = None,
        tool_choice: str | None = None,
        model: str | None = None,
    ) -> CompletionResponse:
        """Generate completion and log the call."""
        start_time = time.perf_counter()
        tool_names = [t.name for t in tools or []]
        format_label = _response_format_label(response_format)

        try:
            response = await self._service.complete(
                messages,
                tools=tools,
                response_format=response_format,
                tool_choice=tool_choice,
                model=model,
            )
        except Exception as e:
            duration = time.perf_counter() - start_time
            entry = self._logger.create_entry(
                model=model or self.default_model,
                messages=[{**m} for m in messages],
                content="",
                tokens_used=0,
                finish_reason="error",
                duration_seconds=duration,
                tools=tool_names,
                response_format=format_label,
                error=str(e),
                **self._metadata,
            )
            self._logger.log(entry)
            raise

        duration = time.perf_counter() - start_time
        entry = self._logger.create_entry(
            model=response.model,
            messages=[{**m} for m in messages],
            content=response.content,
            tokens_used=response.tokens_used,
            finish_reason=response.finish_reason,
            duration_seconds=duration,
            tools=tool_names,
            response_format=format_label,
            tool_calls=[tc.to_wire() for tc in response.tool_calls or []] or None,
            **self._metadata,
        )
        self._logger.log(entry)

        return response

    async def close(self) -> None:
        """Close underlying service."""
        if hasattr(self._service, "close"):
            await self._service.close()

    async def __aenter__(self) -> LoggingService:
        """Enter async context."""
        return self

    async def __aexit__(self, *_: object) -> None:
        """Exit async context."""
        await self.close()
