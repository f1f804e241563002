"""Tool definitions, invocations and the handler registry."""

from structcall.tools.arguments import parse_arguments
from structcall.tools.base import (
    TOOL_NAME_PATTERN,
    ToolCall,
    ToolDefinition,
    ToolHandler,
    ToolSpec,
)
from structcall.tools.errors import ToolError, ToolErrorKind
from structcall.tools.registry import ToolRegistry

__all__ = [
    "TOOL_NAME_PATTERN",
    "ToolCall",
    "ToolDefinition",
    "ToolError",
    "ToolErrorKind",
    "ToolHandler",
    "ToolRegistry",
    "ToolSpec",
    "parse_arguments",
]
