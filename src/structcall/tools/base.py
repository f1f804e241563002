"""Base types for tool calling.

This module defines the core abstractions for tool calling:
- ToolDefinition: what the model is told about a tool
- ToolCall: a tool invocation requested by the model
- ToolHandler: the local callable that answers an invocation
- ToolSpec: one manifest entry pairing a definition with its handler
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from structcall.schema.nodes import ObjectNode, to_json_schema
from structcall.schema.response_format import to_strict_json_schema

TOOL_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")

ToolHandler = Callable[[dict[str, Any]], Any | Awaitable[Any]]


@dataclass(frozen=True)
class ToolDefinition:
    """Definition of a tool that can be offered to the model.

    Attributes:
        name: Unique tool identifier (e.g., "get_weather").
        description: Concise description for the model to understand when to use it.
        parameters: Object schema of accepted arguments.
        strict: Ask the service to guarantee arguments match the schema.

    Example:
        >>> ToolDefinition(
        ...     name="get_weather",
        ...     description="Current weather for a city.",
        ...     parameters=define_object(
        ...         {"city": define_string("City name")},
        ...         required=["city"],
        ...     ),
        ... )
    """

    name: str
    description: str
    parameters: ObjectNode
    strict: bool = False

    def __post_init__(self) -> None:
        if not TOOL_NAME_PATTERN.match(self.name):
            raise ValueError(
                f"Invalid tool name '{self.name}': use 1-64 letters, digits, '_' or '-'"
            )
        if not isinstance(self.parameters, ObjectNode):
            raise TypeError(
                f"Tool '{self.name}' parameters must be an object schema, "
                f"got {type(self.parameters).__name__}"
            )

    @property
    def required(self) -> list[str]:
        """Required parameter names, in declaration order."""
        return self.parameters.required_in_order

    def parameters_schema(self) -> dict[str, Any]:
        """JSON Schema of the parameters as sent on the wire."""
        if self.strict:
            return to_strict_json_schema(self.parameters, schema_name=self.name)
        return to_json_schema(self.parameters)

    def to_wire(self) -> dict[str, Any]:
        """Build the ``tools`` entry for an OpenAI-compatible request."""
        function: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_schema(),
        }
        if self.strict:
            function["strict"] = True
        return {"type": "function", "function": function}


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    Arguments are kept exactly as received; they are only parsed against the
    tool's parameter schema when the invocation is executed.

    Attributes:
        id: Correlation id from the service, echoed back in the result message.
        name: Name of the tool being called.
        arguments: Raw serialized argument payload (normally a JSON object).
    """

    id: str
    name: str
    arguments: str

    def to_wire(self) -> dict[str, Any]:
        """Representation inside an assistant message."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(frozen=True)
class ToolSpec:
    """One manifest entry: a tool definition and the handler that serves it."""

    definition: ToolDefinition
    handler: ToolHandler

    @property
    def name(self) -> str:
        return self.definition.name
