"""Tool handler registry built from a static manifest.

The host declares its tools once at startup as a list of :class:`ToolSpec`
records. The registry validates each parameter schema, indexes handlers by
name, and is frozen by the resolution loop before first use so the set of
tools cannot change while conversations are running.

Example:
    >>> registry = ToolRegistry(
    ...     [
    ...         ToolSpec(
    ...             ToolDefinition(
    ...                 name="get_weather",
    ...                 description="Current weather for a city.",
    ...                 parameters=define_object({"city": define_string()}, required=["city"]),
    ...             ),
    ...             handler=lambda args: f"Sunny in {args['city']}",
    ...         )
    ...     ]
    ... )
    >>> registry.names
    ['get_weather']
"""

from __future__ import annotations

import inspect
import json
from typing import TYPE_CHECKING, Any

from structcall.observability.logging import get_logger
from structcall.schema.builder import DEFAULT_MAX_DEPTH, DEFAULT_MAX_OBJECTS, validate
from structcall.tools.arguments import parse_arguments
from structcall.tools.errors import ToolError, ToolErrorKind

if TYPE_CHECKING:
    from collections.abc import Iterable

    from structcall.tools.base import ToolCall, ToolDefinition, ToolSpec

log = get_logger(__name__)


def _serialize_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result)


class ToolRegistry:
    """Mapping from tool name to definition and handler.

    Args:
        specs: Initial manifest entries.
        max_depth: Nesting limit applied to parameter schemas.
        max_objects: Object-count limit applied to parameter schemas.
    """

    def __init__(
        self,
        specs: Iterable[ToolSpec] = (),
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_objects: int = DEFAULT_MAX_OBJECTS,
    ) -> None:
        self._specs: dict[str, ToolSpec] = {}
        self._frozen = False
        self._max_depth = max_depth
        self._max_objects = max_objects
        for spec in specs:
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        """Add one manifest entry.

        Raises:
            RuntimeError: If the registry is frozen.
            ValueError: If a tool with the same name is already registered.
            SchemaError: If the parameter schema fails validation.
        """
        if self._frozen:
            raise RuntimeError(f"Cannot register '{spec.name}': registry is frozen")
        if spec.name in self._specs:
            raise ValueError(f"Tool '{spec.name}' is already registered")
        if not callable(spec.handler):
            raise TypeError(f"Handler for tool '{spec.name}' is not callable")

        validate(spec.definition.parameters, self._max_depth, self._max_objects)
        self._specs[spec.name] = spec
        log.debug("tool_registered", tool=spec.name, strict=spec.definition.strict)

    def freeze(self) -> None:
        """Disallow further registration."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def names(self) -> list[str]:
        return list(self._specs)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def get(self, name: str) -> ToolSpec | None:
        return self._specs.get(name)

    def definitions(self) -> list[ToolDefinition]:
        """Definitions in registration order, for offering to the service."""
        return [spec.definition for spec in self._specs.values()]

    async def execute(self, call: ToolCall) -> str:
        """Run the handler for one invocation.

        The handler is invoked at most once and never retried.

        Args:
            call: The invocation requested by the model.

        Returns:
            The handler's result as a string.

        Raises:
            ToolError: UNKNOWN_TOOL, ARGUMENT_MISMATCH or HANDLER_FAILURE.
        """
        spec = self._specs.get(call.name)
        if spec is None:
            raise ToolError(
                ToolErrorKind.UNKNOWN_TOOL,
                f"Unknown tool '{call.name}'",
                tool_name=call.name,
                call_id=call.id,
            )

        arguments = parse_arguments(call, spec.definition)

        log.debug("tool_call_start", tool=call.name, call_id=call.id)
        try:
            result = spec.handler(arguments)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            log.warning("tool_call_error", tool=call.name, call_id=call.id, error=str(e))
            raise ToolError(
                ToolErrorKind.HANDLER_FAILURE,
                f"Tool '{call.name}' failed: {e}",
                tool_name=call.name,
                call_id=call.id,
            ) from e

        try:
            content = _serialize_result(result)
        except (TypeError, ValueError) as e:
            raise ToolError(
                ToolErrorKind.HANDLER_FAILURE,
                f"Tool '{call.name}' returned a value that cannot be serialized: {e}",
                tool_name=call.name,
                call_id=call.id,
            ) from e

        log.debug("tool_call_complete", tool=call.name, call_id=call.id, length=len(content))
        return content
