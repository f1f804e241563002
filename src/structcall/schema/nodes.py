"""Schema node types and their JSON Schema wire representation.

A schema tree is built from immutable node values, one class per JSON Schema
kind. ``SchemaNode`` is the union of all of them; every function that walks a
tree dispatches on the concrete class and raises ``TypeError`` for anything
else, so adding a variant without handling it fails loudly.

Containers handed to :class:`ObjectNode` and :class:`EnumNode` are copied into
read-only containers, so a node never changes after construction and can be
shared freely between concurrent requests.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar

from structcall.schema.errors import SchemaError, SchemaErrorKind


@dataclass(frozen=True)
class StringNode:
    """A JSON string with optional length and pattern constraints."""

    description: str | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None

    json_type: ClassVar[str] = "string"


@dataclass(frozen=True)
class IntegerNode:
    """A JSON integer with optional range constraints."""

    description: str | None = None
    minimum: int | float | None = None
    maximum: int | float | None = None
    multiple_of: int | float | None = None

    json_type: ClassVar[str] = "integer"


@dataclass(frozen=True)
class NumberNode:
    """A JSON number with optional range constraints."""

    description: str | None = None
    minimum: int | float | None = None
    maximum: int | float | None = None
    multiple_of: int | float | None = None

    json_type: ClassVar[str] = "number"


@dataclass(frozen=True)
class BooleanNode:
    """A JSON boolean."""

    description: str | None = None

    json_type: ClassVar[str] = "boolean"


@dataclass(frozen=True)
class NullNode:
    """The JSON ``null`` literal."""

    description: str | None = None

    json_type: ClassVar[str] = "null"


@dataclass(frozen=True)
class EnumNode:
    """A string restricted to an ordered set of literal values."""

    values: tuple[str, ...]
    description: str | None = None

    json_type: ClassVar[str] = "string"

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(self.values))


@dataclass(frozen=True)
class ArrayNode:
    """A JSON array whose elements all match ``items``."""

    items: SchemaNode
    description: str | None = None
    min_items: int | None = None
    max_items: int | None = None
    unique_items: bool = False

    json_type: ClassVar[str] = "array"


@dataclass(frozen=True)
class ObjectNode:
    """A JSON object with named properties.

    Attributes:
        properties: Property name to child node, in declaration order.
        required: Names that must be present. Always a subset of ``properties``.
        additional_properties: Whether undeclared keys are allowed.
        enum_values: Optional list of allowed literal objects.
    """

    properties: Mapping[str, SchemaNode] = field(default_factory=dict)
    required: frozenset[str] = frozenset()
    additional_properties: bool = True
    description: str | None = None
    min_properties: int | None = None
    max_properties: int | None = None
    enum_values: tuple[Any, ...] | None = None

    json_type: ClassVar[str] = "object"

    def __post_init__(self) -> None:
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))
        object.__setattr__(self, "required", frozenset(self.required))
        if self.enum_values is not None:
            object.__setattr__(self, "enum_values", tuple(self.enum_values))

        missing = [name for name in self.required if name not in self.properties]
        if missing:
            raise SchemaError(
                SchemaErrorKind.INVALID_REQUIRED,
                f"Required properties not declared: {', '.join(sorted(missing))}",
            )

    def __hash__(self) -> int:
        # enum_values may hold dicts; leaving them out keeps hash consistent with eq
        return hash(
            (
                tuple(self.properties.items()),
                self.required,
                self.additional_properties,
                self.description,
                self.min_properties,
                self.max_properties,
            )
        )

    @property
    def required_in_order(self) -> list[str]:
        """Required names in property declaration order."""
        return [name for name in self.properties if name in self.required]


SchemaNode = (
    StringNode
    | IntegerNode
    | NumberNode
    | BooleanNode
    | NullNode
    | EnumNode
    | ArrayNode
    | ObjectNode
)

SCHEMA_NODE_TYPES: tuple[type, ...] = (
    StringNode,
    IntegerNode,
    NumberNode,
    BooleanNode,
    NullNode,
    EnumNode,
    ArrayNode,
    ObjectNode,
)


def is_schema_node(value: object) -> bool:
    """Return True if *value* is one of the schema node variants."""
    return isinstance(value, SCHEMA_NODE_TYPES)


# ---------------------------------------------------------------------------
# Tree walking
# ---------------------------------------------------------------------------


def iter_nodes(node: SchemaNode, path: str = "#") -> Iterator[tuple[str, SchemaNode, int]]:
    """Yield ``(path, node, object_depth)`` for every node in the tree.

    ``object_depth`` counts the objects on the way from the root down to and
    including the node itself; arrays do not add a level.
    """
    stack: list[tuple[str, SchemaNode, int]] = [(path, node, 0)]
    while stack:
        current_path, current, parent_depth = stack.pop()
        depth = parent_depth + 1 if isinstance(current, ObjectNode) else parent_depth
        yield current_path, current, depth

        if isinstance(current, ObjectNode):
            # Reverse so properties come out in declaration order
            for name, child in reversed(list(current.properties.items())):
                stack.append((f"{current_path}/properties/{name}", child, depth))
        elif isinstance(current, ArrayNode):
            stack.append((f"{current_path}/items", current.items, depth))
        elif not is_schema_node(current):
            raise TypeError(f"Not a schema node: {current!r}")


@dataclass(frozen=True)
class SchemaStats:
    """Size figures for a schema tree.

    Attributes:
        max_depth: Deepest object-in-object nesting (root object counts as 1).
        object_count: Number of object nodes in the whole tree.
        node_count: Number of nodes of any kind.
    """

    max_depth: int
    object_count: int
    node_count: int


def schema_stats(node: SchemaNode) -> SchemaStats:
    """Compute nesting depth and node counts for a schema tree."""
    max_depth = 0
    objects = 0
    nodes = 0
    for _, current, depth in iter_nodes(node):
        nodes += 1
        if isinstance(current, ObjectNode):
            objects += 1
            max_depth = max(max_depth, depth)
    return SchemaStats(max_depth=max_depth, object_count=objects, node_count=nodes)


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


def _put(out: dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        out[key] = value


def to_json_schema(node: SchemaNode) -> dict[str, Any]:
    """Serialize a node tree to standard JSON Schema.

    Unset constraints are omitted; ``additionalProperties`` is only written
    when it is ``False`` and ``uniqueItems`` only when it is ``True``.
    """
    out: dict[str, Any] = {"type": node.json_type}

    if isinstance(node, StringNode):
        _put(out, "description", node.description)
        _put(out, "minLength", node.min_length)
        _put(out, "maxLength", node.max_length)
        _put(out, "pattern", node.pattern)
    elif isinstance(node, IntegerNode | NumberNode):
        _put(out, "description", node.description)
        _put(out, "minimum", node.minimum)
        _put(out, "maximum", node.maximum)
        _put(out, "multipleOf", node.multiple_of)
    elif isinstance(node, BooleanNode | NullNode):
        _put(out, "description", node.description)
    elif isinstance(node, EnumNode):
        _put(out, "description", node.description)
        out["enum"] = list(node.values)
    elif isinstance(node, ArrayNode):
        _put(out, "description", node.description)
        out["items"] = to_json_schema(node.items)
        _put(out, "minItems", node.min_items)
        _put(out, "maxItems", node.max_items)
        if node.unique_items:
            out["uniqueItems"] = True
    elif isinstance(node, ObjectNode):
        _put(out, "description", node.description)
        out["properties"] = {
            name: to_json_schema(child) for name, child in node.properties.items()
        }
        required = node.required_in_order
        if required:
            out["required"] = required
        if not node.additional_properties:
            out["additionalProperties"] = False
        _put(out, "minProperties", node.min_properties)
        _put(out, "maxProperties", node.max_properties)
        if node.enum_values is not None:
            out["enum"] = list(node.enum_values)
    else:
        raise TypeError(f"Not a schema node: {node!r}")

    return out


def from_json_schema(data: Mapping[str, Any], path: str = "#") -> SchemaNode:
    """Parse a JSON Schema document into a node tree.

    Only the vocabulary produced by :func:`to_json_schema` is understood.

    Raises:
        SchemaError: If the document uses a type the node model cannot express.
    """
    schema_type = data.get("type")
    description = data.get("description")

    if schema_type == "object":
        raw_properties = data.get("properties", {})
        properties = {
            name: from_json_schema(child, f"{path}/properties/{name}")
            for name, child in raw_properties.items()
        }
        additional = data.get("additionalProperties", True)
        if not isinstance(additional, bool):
            raise SchemaError(
                SchemaErrorKind.UNSUPPORTED_TYPE,
                "additionalProperties must be a boolean",
                path,
            )
        enum_values = data.get("enum")
        try:
            return ObjectNode(
                properties=properties,
                required=frozenset(data.get("required", [])),
                additional_properties=additional,
                description=description,
                min_properties=data.get("minProperties"),
                max_properties=data.get("maxProperties"),
                enum_values=tuple(enum_values) if enum_values is not None else None,
            )
        except SchemaError as e:
            raise SchemaError(e.kind, e.detail, path) from e

    if "enum" in data and schema_type in ("string", None):
        from structcall.schema.builder import define_enum

        values = data["enum"]
        if not all(isinstance(v, str) for v in values):
            raise SchemaError(
                SchemaErrorKind.UNSUPPORTED_TYPE, "Only string enums are supported", path
            )
        try:
            return define_enum(values, description)
        except SchemaError as e:
            raise SchemaError(e.kind, e.detail, path) from e

    if schema_type == "string":
        return StringNode(
            description=description,
            min_length=data.get("minLength"),
            max_length=data.get("maxLength"),
            pattern=data.get("pattern"),
        )
    if schema_type in ("integer", "number"):
        node_cls = IntegerNode if schema_type == "integer" else NumberNode
        return node_cls(
            description=description,
            minimum=data.get("minimum"),
            maximum=data.get("maximum"),
            multiple_of=data.get("multipleOf"),
        )
    if schema_type == "boolean":
        return BooleanNode(description=description)
    if schema_type == "null":
        return NullNode(description=description)
    if schema_type == "array":
        if "items" not in data:
            raise SchemaError(SchemaErrorKind.UNSUPPORTED_TYPE, "Array without items", path)
        return ArrayNode(
            items=from_json_schema(data["items"], f"{path}/items"),
            description=description,
            min_items=data.get("minItems"),
            max_items=data.get("maxItems"),
            unique_items=bool(data.get("uniqueItems", False)),
        )

    raise SchemaError(
        SchemaErrorKind.UNSUPPORTED_TYPE, f"Unsupported schema type {schema_type!r}", path
    )
