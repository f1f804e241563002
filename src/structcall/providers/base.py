"""Base protocol and types for completion services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol, TypedDict

if TYPE_CHECKING:
    from structcall.schema.response_format import ResponseFormat
    from structcall.tools import ToolCall, ToolDefinition


class _MessageRequired(TypedDict):
    """Required fields for all messages."""

    role: Literal["system", "user", "assistant", "tool"]
    content: str


class Message(_MessageRequired, total=False):
    """A single message in a conversation.

    Supports regular messages (system/user/assistant), assistant messages that
    request tools, and tool result messages.

    Attributes:
        role: Message role - "system", "user", "assistant", or "tool".
        content: Message content text.
        tool_calls: Wire form of requested invocations (assistant role only).
        tool_call_id: ID of the tool call this message responds to (tool role only).
    """

    tool_calls: list[dict[str, Any]]  # assistant only
    tool_call_id: str  # Required for role="tool"


@dataclass
class CompletionResponse:
    """Response from a completion request.

    Only the first candidate returned by the service is represented.

    Attributes:
        content: Text content from the response.
        model: Model that generated the response.
        tokens_used: Total tokens consumed.
        finish_reason: Why the response ended ("stop", "tool_calls", "length", etc.).
        tool_calls: Tool invocations requested by the model, in the order received.
    """

    content: str
    model: str
    tokens_used: int
    finish_reason: str
    tool_calls: list[ToolCall] | None = field(default=None)

    @property
    def is_complete(self) -> bool:
        """Check if the response completed successfully (no pending tool calls)."""
        return self.finish_reason == "stop" and not self.tool_calls

    @property
    def has_tool_calls(self) -> bool:
        """Check if the response contains tool calls."""
        return bool(self.tool_calls)


class CompletionService(Protocol):
    """Protocol for completion services.

    Implementations submit a conversation to a model and return its first
    candidate message. Failures are reported as :class:`ServiceError`.
    """

    @property
    def default_model(self) -> str:
        """Return the default model for this service."""
        ...

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        response_format: ResponseFormat | None = None,
        tool_choice: str | None = None,
        model: str | None = None,
    ) -> CompletionResponse:
        """Generate a completion from the given messages.

        Args:
            messages: Conversation so far (including tool results).
            tools: Optional tools to make available to the model.
            response_format: Optional JSON Mode / Structured Outputs request.
            tool_choice: How to handle tool selection:
                - None or "auto": model decides whether to call tools
                - "required": model must call at least one tool
                - "none": disable tool calling for this request
                - "<tool_name>": force a specific tool to be called
            model: Model to use. If None, uses the service's default.

        Returns:
            CompletionResponse with the generated text and any tool calls.

        Raises:
            ServiceError: If the request fails.
        """
        ...


class ServiceError(Exception):
    """Base exception for completion-service failures.

    Attributes:
        status: Machine-readable status (HTTP status code or a symbolic name).
        provider: Name of the service that failed.
    """

    status = "error"

    def __init__(self, provider: str, message: str, status: str | None = None) -> None:
        self.provider = provider
        if status is not None:
            self.status = status
        self.message = message
        super().__init__(f"[{provider}] {message}")


class ServiceConnectionError(ServiceError):
    """Raised when the service cannot be reached or times out."""

    status = "connection_error"


class ServiceRateLimitError(ServiceError):
    """Raised when rate limit is exceeded.

    Attributes:
        retry_after: Seconds the service asked us to wait, if it said.
    """

    status = "rate_limited"

    def __init__(self, provider: str, message: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(provider, message)


class ServiceResponseError(ServiceError):
    """Raised when the service answers with something we cannot interpret."""

    status = "bad_response"
