"""Builder functions for schema node trees.

Leaf builders never fail: contradictory constraints such as
``min_length > max_length`` are only reported by :func:`validate`, which is
meant to run once a tree is complete and about to be submitted. Composite
builders check their structural invariants immediately and never return a
partial node.

Example:
    >>> address = define_object(
    ...     {"street": define_string(), "city": define_string()},
    ...     required=["city"],
    ... )
    >>> person = define_object(
    ...     {
    ...         "name": define_string("Full name", min_length=1),
    ...         "age": define_integer(minimum=0),
    ...         "address": address,
    ...     },
    ...     required=["name", "age"],
    ... )
    >>> validate(person) is person
    True
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from structcall.observability.logging import get_logger
from structcall.schema.errors import SchemaError, SchemaErrorKind
from structcall.schema.nodes import (
    ArrayNode,
    BooleanNode,
    EnumNode,
    IntegerNode,
    NullNode,
    NumberNode,
    ObjectNode,
    SchemaNode,
    StringNode,
    is_schema_node,
    iter_nodes,
    schema_stats,
)

log = get_logger(__name__)

# Ceilings enforced by OpenAI-compatible hosts for structured outputs
DEFAULT_MAX_DEPTH = 5
DEFAULT_MAX_OBJECTS = 100


def define_string(
    description: str | None = None,
    *,
    min_length: int | None = None,
    max_length: int | None = None,
    pattern: str | None = None,
) -> StringNode:
    """Define a string node."""
    return StringNode(
        description=description,
        min_length=min_length,
        max_length=max_length,
        pattern=pattern,
    )


def define_integer(
    description: str | None = None,
    *,
    minimum: int | float | None = None,
    maximum: int | float | None = None,
    multiple_of: int | float | None = None,
) -> IntegerNode:
    """Define an integer node."""
    return IntegerNode(
        description=description,
        minimum=minimum,
        maximum=maximum,
        multiple_of=multiple_of,
    )


def define_number(
    description: str | None = None,
    *,
    minimum: int | float | None = None,
    maximum: int | float | None = None,
    multiple_of: int | float | None = None,
) -> NumberNode:
    """Define a number node."""
    return NumberNode(
        description=description,
        minimum=minimum,
        maximum=maximum,
        multiple_of=multiple_of,
    )


def define_boolean(description: str | None = None) -> BooleanNode:
    """Define a boolean node."""
    return BooleanNode(description=description)


def define_null(description: str | None = None) -> NullNode:
    """Define a null node."""
    return NullNode(description=description)


def define_enum(values: Sequence[str], description: str | None = None) -> EnumNode:
    """Define a string enum.

    Args:
        values: Allowed literals, in the order they should be presented.
        description: Optional description.

    Raises:
        SchemaError: If *values* is empty (EMPTY_ENUM) or has duplicates
            (INVALID_CONSTRAINT).
    """
    values = tuple(values)
    if not values:
        raise SchemaError(SchemaErrorKind.EMPTY_ENUM, "Enum must have at least one value")

    duplicates = sorted({v for v in values if values.count(v) > 1})
    if duplicates:
        raise SchemaError(
            SchemaErrorKind.INVALID_CONSTRAINT,
            f"Enum values must be unique, duplicated: {', '.join(duplicates)}",
        )
    return EnumNode(values=values, description=description)


def define_array(
    item_schema: SchemaNode,
    *,
    min_items: int | None = None,
    max_items: int | None = None,
    unique_items: bool = False,
    description: str | None = None,
) -> ArrayNode:
    """Define an array whose elements match *item_schema*."""
    if not is_schema_node(item_schema):
        raise TypeError(f"item_schema must be a schema node, got {type(item_schema).__name__}")
    return ArrayNode(
        items=item_schema,
        description=description,
        min_items=min_items,
        max_items=max_items,
        unique_items=unique_items,
    )


def define_object(
    properties: Mapping[str, SchemaNode],
    required: Iterable[str] | None = None,
    additional_properties: bool = True,
    description: str | None = None,
    enum_values: Sequence[Any] | None = None,
    *,
    min_properties: int | None = None,
    max_properties: int | None = None,
) -> ObjectNode:
    """Define an object node.

    The property mapping is copied, so the caller's dict can be reused or
    modified afterwards without affecting the node.

    Args:
        properties: Property name to child node, in serialization order.
        required: Names that must be present; each must be a key of *properties*.
        additional_properties: Whether undeclared keys are allowed.
        description: Optional description.
        enum_values: Optional list of allowed literal objects.
        min_properties: Minimum number of keys.
        max_properties: Maximum number of keys.

    Raises:
        SchemaError: INVALID_REQUIRED if a required name is not a property.
        TypeError: If a property value is not a schema node.
    """
    for name, child in properties.items():
        if not is_schema_node(child):
            raise TypeError(
                f"Property '{name}' must be a schema node, got {type(child).__name__}"
            )

    return ObjectNode(
        properties=properties,
        required=frozenset(required or ()),
        additional_properties=additional_properties,
        description=description,
        min_properties=min_properties,
        max_properties=max_properties,
        enum_values=tuple(enum_values) if enum_values is not None else None,
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _check_range(path: str, low_name: str, low: Any, high_name: str, high: Any) -> None:
    if low is not None and high is not None and low > high:
        raise SchemaError(
            SchemaErrorKind.INVALID_CONSTRAINT,
            f"{low_name} ({low}) is greater than {high_name} ({high})",
            path,
        )


def _check_non_negative(path: str, name: str, value: int | None) -> None:
    if value is not None and value < 0:
        raise SchemaError(
            SchemaErrorKind.INVALID_CONSTRAINT, f"{name} must not be negative", path
        )


def _check_constraints(path: str, node: SchemaNode) -> None:
    if isinstance(node, StringNode):
        _check_non_negative(path, "minLength", node.min_length)
        _check_non_negative(path, "maxLength", node.max_length)
        _check_range(path, "minLength", node.min_length, "maxLength", node.max_length)
    elif isinstance(node, IntegerNode | NumberNode):
        _check_range(path, "minimum", node.minimum, "maximum", node.maximum)
        if node.multiple_of is not None and node.multiple_of <= 0:
            raise SchemaError(
                SchemaErrorKind.INVALID_CONSTRAINT, "multipleOf must be positive", path
            )
    elif isinstance(node, ArrayNode):
        _check_non_negative(path, "minItems", node.min_items)
        _check_non_negative(path, "maxItems", node.max_items)
        _check_range(path, "minItems", node.min_items, "maxItems", node.max_items)
    elif isinstance(node, ObjectNode):
        _check_non_negative(path, "minProperties", node.min_properties)
        _check_non_negative(path, "maxProperties", node.max_properties)
        _check_range(
            path, "minProperties", node.min_properties, "maxProperties", node.max_properties
        )
    elif isinstance(node, EnumNode):
        if not node.values:
            raise SchemaError(SchemaErrorKind.EMPTY_ENUM, "Enum has no values", path)


def validate(
    node: SchemaNode,
    max_depth: int = DEFAULT_MAX_DEPTH,
    max_objects: int = DEFAULT_MAX_OBJECTS,
) -> SchemaNode:
    """Check a complete tree against host limits and constraint consistency.

    Validation is a checkpoint, not a transform: the same tree is returned.

    Args:
        node: Root of the tree.
        max_depth: Maximum object-in-object nesting depth.
        max_objects: Maximum number of object nodes in the tree.

    Returns:
        *node*, unchanged.

    Raises:
        SchemaError: TOO_DEEPLY_NESTED, TOO_MANY_PROPERTIES, EMPTY_ENUM or
            INVALID_CONSTRAINT.
    """
    for path, current, depth in iter_nodes(node):
        if isinstance(current, ObjectNode) and depth > max_depth:
            raise SchemaError(
                SchemaErrorKind.TOO_DEEPLY_NESTED,
                f"Object nesting depth {depth} exceeds limit of {max_depth}",
                path,
            )
        _check_constraints(path, current)

    stats = schema_stats(node)
    if stats.object_count > max_objects:
        raise SchemaError(
            SchemaErrorKind.TOO_MANY_PROPERTIES,
            f"Schema has {stats.object_count} objects, limit is {max_objects}",
        )

    log.debug(
        "schema_validated",
        depth=stats.max_depth,
        objects=stats.object_count,
        nodes=stats.node_count,
    )
    return node
