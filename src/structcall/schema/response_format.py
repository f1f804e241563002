"""Response formats for JSON Mode and Structured Outputs.

Three modes are supported by OpenAI-compatible services:

- ``text``: plain text (the default when no format is sent).
- ``json_object``: JSON Mode; the model emits some JSON object.
- ``json_schema``: Structured Outputs; the model emits JSON matching a schema.
  With ``strict=True`` the service guarantees conformance, but only accepts
  schemas where every object is closed (``additionalProperties: false``) and
  lists all of its properties in ``required``.

Strict-mode wire schemas are produced by :func:`to_strict_json_schema`, which
rewrites optional properties as required-but-nullable so the caller's tree
does not have to be authored in that shape.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import jsonschema

from structcall.observability.logging import get_logger
from structcall.schema.builder import validate
from structcall.schema.nodes import ArrayNode, ObjectNode, SchemaNode, to_json_schema

log = get_logger(__name__)

_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


class ResponseFormatType(StrEnum):
    """Output mode requested from the completion service."""

    TEXT = "text"
    JSON_OBJECT = "json_object"
    JSON_SCHEMA = "json_schema"


class StructuredOutputError(ValueError):
    """Raised when a final message does not match the requested format.

    Attributes:
        content: The raw message content.
        errors: Individual problems found.
    """

    def __init__(self, message: str, content: str, errors: list[str] | None = None) -> None:
        self.content = content
        self.errors = errors or []
        super().__init__(message)


def _nullable(schema: dict[str, Any]) -> dict[str, Any]:
    """Allow ``null`` in addition to the schema's own type."""
    schema_type = schema.get("type")
    if isinstance(schema_type, str) and schema_type != "null":
        schema["type"] = [schema_type, "null"]
        if "enum" in schema:
            schema["enum"] = [*schema["enum"], None]
    return schema


def _strict(node: SchemaNode, path: str) -> dict[str, Any]:
    if isinstance(node, ObjectNode):
        wire: dict[str, Any] = {"type": "object"}
        if node.description is not None:
            wire["description"] = node.description

        properties: dict[str, Any] = {}
        for name, child in node.properties.items():
            child_wire = _strict(child, f"{path}.{name}")
            if name not in node.required:
                log.debug("strict_schema_field_nullable", field=f"{path}.{name}")
                child_wire = _nullable(child_wire)
            properties[name] = child_wire

        wire["properties"] = properties
        wire["required"] = list(node.properties)
        wire["additionalProperties"] = False
        return wire

    if isinstance(node, ArrayNode):
        wire = to_json_schema(node)
        wire["items"] = _strict(node.items, f"{path}[]")
        return wire

    return to_json_schema(node)


def to_strict_json_schema(node: SchemaNode, schema_name: str = "root") -> dict[str, Any]:
    """Serialize *node* in the shape strict mode requires.

    Every object becomes closed and lists all its properties as required;
    properties that were optional become nullable instead. ``minProperties`` /
    ``maxProperties`` and object-level ``enum`` are dropped since they are
    meaningless once all properties are required. The input tree is not
    modified.

    Args:
        node: Root of the schema tree.
        schema_name: Name used in debug logs.

    Returns:
        JSON Schema dict suitable for a strict ``json_schema`` response format
        or a strict function definition.
    """
    return _strict(node, schema_name)


@dataclass(frozen=True)
class ResponseFormat:
    """A response-format descriptor attached to a completion request.

    Use the :meth:`text`, :meth:`json_object` and :meth:`json_schema`
    constructors rather than instantiating directly.

    Attributes:
        type: Output mode.
        name: Schema name (json_schema only).
        schema: Schema tree (json_schema only).
        strict: Whether the service must guarantee conformance.
        description: Optional schema description.
    """

    type: ResponseFormatType
    name: str | None = None
    schema: SchemaNode | None = None
    strict: bool = False
    description: str | None = None

    @classmethod
    def text(cls) -> ResponseFormat:
        """Plain text output."""
        return cls(type=ResponseFormatType.TEXT)

    @classmethod
    def json_object(cls) -> ResponseFormat:
        """JSON Mode: any JSON object."""
        return cls(type=ResponseFormatType.JSON_OBJECT)

    @classmethod
    def json_schema(
        cls,
        name: str,
        schema: SchemaNode,
        strict: bool = True,
        description: str | None = None,
    ) -> ResponseFormat:
        """Structured Outputs against *schema*.

        The schema is validated against host limits here, so a format that
        exists can always be submitted.

        Raises:
            ValueError: If *name* is not a valid schema name.
            SchemaError: If the schema fails validation.
        """
        if not _NAME_PATTERN.match(name):
            raise ValueError(
                f"Invalid schema name '{name}': use 1-64 letters, digits, '_' or '-'"
            )
        validate(schema)
        return cls(
            type=ResponseFormatType.JSON_SCHEMA,
            name=name,
            schema=schema,
            strict=strict,
            description=description,
        )

    def wire_schema(self) -> dict[str, Any] | None:
        """Return the JSON Schema sent on the wire, if any."""
        if self.schema is None:
            return None
        if self.strict:
            return to_strict_json_schema(self.schema, schema_name=self.name or "root")
        return to_json_schema(self.schema)

    def to_wire(self) -> dict[str, Any]:
        """Build the ``response_format`` request payload."""
        if self.type is not ResponseFormatType.JSON_SCHEMA:
            return {"type": str(self.type)}

        json_schema: dict[str, Any] = {"name": self.name, "schema": self.wire_schema()}
        if self.description is not None:
            json_schema["description"] = self.description
        if self.strict:
            json_schema["strict"] = True
        return {"type": "json_schema", "json_schema": json_schema}


def parse_structured_output(content: str, response_format: ResponseFormat) -> Any:
    """Decode and check a final message against its response format.

    Args:
        content: Message content returned by the service.
        response_format: The format that was requested.

    Returns:
        The decoded JSON value (``content`` itself for text formats).

    Raises:
        StructuredOutputError: If the content is not JSON, is not an object
            (JSON Mode), or does not match the schema.
    """
    if response_format.type is ResponseFormatType.TEXT:
        return content

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise StructuredOutputError(f"Response is not valid JSON: {e}", content) from e

    if response_format.type is ResponseFormatType.JSON_OBJECT:
        if not isinstance(data, dict):
            raise StructuredOutputError("Response is not a JSON object", content)
        return data

    validator = jsonschema.Draft202012Validator(response_format.wire_schema() or {})
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    if errors:
        messages = [
            f"{'/'.join(str(p) for p in err.absolute_path) or '<root>'}: {err.message}"
            for err in errors
        ]
        log.debug("structured_output_invalid", schema=response_format.name, errors=len(errors))
        raise StructuredOutputError(
            f"Response does not match schema '{response_format.name}'", content, messages
        )
    return data
