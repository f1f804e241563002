"""structcall: JSON Schema trees and tool-call resolution for chat completions."""

from structcall.conversation import (
    ConversationError,
    ConversationRunner,
    ConversationState,
    FailureKind,
    LoopState,
    Resolution,
)
from structcall.schema import ResponseFormat, SchemaError, generate_from_type, validate
from structcall.tools import ToolCall, ToolDefinition, ToolError, ToolRegistry, ToolSpec

__version__ = "0.1.0"

__all__ = [
    "ConversationError",
    "ConversationRunner",
    "ConversationState",
    "FailureKind",
    "LoopState",
    "Resolution",
    "ResponseFormat",
    "SchemaError",
    "ToolCall",
    "ToolDefinition",
    "ToolError",
    "ToolRegistry",
    "ToolSpec",
    "__version__",
    "generate_from_type",
    "validate",
]
