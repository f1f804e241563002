"""Errors raised while executing a single tool invocation."""

from __future__ import annotations

from enum import Enum, auto


class ToolErrorKind(Enum):
    """Category of a per-invocation tool failure."""

    UNKNOWN_TOOL = auto()  # No handler registered under the requested name
    ARGUMENT_MISMATCH = auto()  # Payload is not JSON or violates the parameter schema
    HANDLER_FAILURE = auto()  # Handler raised


class ToolError(Exception):
    """Raised when one tool invocation cannot produce a result.

    The originating exception, if any, is chained as ``__cause__``.

    Attributes:
        kind: Failure category.
        tool_name: Name the model asked for.
        call_id: Correlation id of the invocation.
    """

    def __init__(
        self,
        kind: ToolErrorKind,
        message: str,
        tool_name: str,
        call_id: str,
    ) -> None:
        self.kind = kind
        self.tool_name = tool_name
        self.call_id = call_id
        super().__init__(message)
