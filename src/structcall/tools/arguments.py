"""Parse raw tool-call arguments against the tool's parameter schema."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import jsonschema

from structcall.tools.errors import ToolError, ToolErrorKind

if TYPE_CHECKING:
    from structcall.tools.base import ToolCall, ToolDefinition


def _format_error(error: jsonschema.ValidationError) -> str:
    location = "/".join(str(p) for p in error.absolute_path) or "<root>"
    return f"{location}: {error.message}"


def parse_arguments(call: ToolCall, definition: ToolDefinition) -> dict[str, Any]:
    """Decode and validate the argument payload of *call*.

    Values are never coerced: ``"3"`` for an integer parameter is a mismatch.
    An empty payload is treated as ``{}``, which some services send for
    parameterless tools.

    Args:
        call: The invocation as received from the service.
        definition: Definition of the tool it names.

    Returns:
        The decoded argument object.

    Raises:
        ToolError: ARGUMENT_MISMATCH if the payload is not a JSON object or does
            not match the parameter schema.
    """
    raw = call.arguments.strip() if call.arguments else ""
    try:
        data = json.loads(raw) if raw else {}
    except json.JSONDecodeError as e:
        raise ToolError(
            ToolErrorKind.ARGUMENT_MISMATCH,
            f"Arguments for '{call.name}' are not valid JSON: {e}",
            tool_name=call.name,
            call_id=call.id,
        ) from e

    if not isinstance(data, dict):
        raise ToolError(
            ToolErrorKind.ARGUMENT_MISMATCH,
            f"Arguments for '{call.name}' must be a JSON object, got {type(data).__name__}",
            tool_name=call.name,
            call_id=call.id,
        )

    validator = jsonschema.Draft202012Validator(definition.parameters_schema())
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    if errors:
        details = "; ".join(_format_error(err) for err in errors)
        raise ToolError(
            ToolErrorKind.ARGUMENT_MISMATCH,
            f"Arguments for '{call.name}' do not match its parameters: {details}",
            tool_name=call.name,
            call_id=call.id,
        )

    return data
