"""Derive schema trees from declarative record descriptions.

Instead of inspecting classes at runtime, callers describe their records
explicitly (field name, kind, nullability, container-ness) and get an
equivalent :class:`~structcall.schema.nodes.ObjectNode`. Descriptions are
pydantic models, so they can be written in YAML or JSON as well as in code.

Mapping rules:

- ``string``/``integer``/``number``/``boolean`` become the matching leaf node.
- ``enum`` becomes an :class:`EnumNode` over ``values``.
- ``list`` becomes an array of ``items``; ``set`` does the same with
  ``uniqueItems``.
- ``record`` becomes a nested object derived from ``record``.
- ``map`` becomes an open object without fixed properties; only string keys
  are mappable.
- Non-nullable fields are required, nullable fields are optional properties.

Example:
    >>> spec = RecordSpec(
    ...     name="Person",
    ...     fields=[
    ...         FieldSpec(name="name", kind="string"),
    ...         FieldSpec(name="age", kind="integer"),
    ...         FieldSpec(
    ...             name="interests",
    ...             kind="list",
    ...             nullable=True,
    ...             items=FieldSpec(kind="string"),
    ...         ),
    ...     ],
    ... )
    >>> node = generate_from_type(spec)
    >>> sorted(node.required)
    ['age', 'name']
"""

from __future__ import annotations

from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any

from pydantic import BaseModel, Field

from structcall.observability.logging import get_logger
from structcall.schema.builder import (
    define_array,
    define_boolean,
    define_enum,
    define_integer,
    define_number,
    define_object,
    define_string,
)
from structcall.schema.errors import SchemaError, SchemaErrorKind
from structcall.schema.nodes import ObjectNode, SchemaNode

log = get_logger(__name__)

SUPPORTED_KINDS = frozenset(
    {"string", "integer", "number", "boolean", "enum", "list", "set", "record", "map"}
)


class FieldSpec(BaseModel):
    """Structural description of one record field (or of a list element)."""

    name: str = Field("", description="Field name; unused for list elements")
    kind: str = Field(..., description="One of the supported field kinds")
    nullable: bool = Field(False, description="Whether the field may be absent")
    description: str | None = None
    items: FieldSpec | None = Field(None, description="Element description for list/set")
    record: RecordSpec | None = Field(None, description="Nested record for kind=record")
    values: list[str] | None = Field(None, description="Allowed literals for kind=enum")
    key_kind: str = Field("string", description="Key kind for kind=map")


class RecordSpec(BaseModel):
    """Structural description of a record type."""

    name: str
    fields: list[FieldSpec] = Field(default_factory=list)
    description: str | None = None
    additional_properties: bool = True


FieldSpec.model_rebuild()


def _field_node(spec: FieldSpec, path: str) -> SchemaNode:
    kind = spec.kind

    if kind not in SUPPORTED_KINDS:
        raise SchemaError(
            SchemaErrorKind.UNSUPPORTED_TYPE, f"Unsupported field kind '{kind}'", path
        )

    if kind == "string":
        return define_string(spec.description)
    if kind == "integer":
        return define_integer(spec.description)
    if kind == "number":
        return define_number(spec.description)
    if kind == "boolean":
        return define_boolean(spec.description)
    if kind == "enum":
        return define_enum(spec.values or [], spec.description)

    if kind in ("list", "set"):
        if spec.items is None:
            raise SchemaError(
                SchemaErrorKind.UNSUPPORTED_TYPE,
                f"'{kind}' field needs an items description",
                path,
            )
        if spec.items.nullable:
            raise SchemaError(
                SchemaErrorKind.UNSUPPORTED_TYPE,
                "Nullable list elements cannot be expressed",
                path,
            )
        return define_array(
            _field_node(spec.items, f"{path}/items"),
            unique_items=kind == "set",
            description=spec.description,
        )

    if kind == "record":
        if spec.record is None:
            raise SchemaError(
                SchemaErrorKind.UNSUPPORTED_TYPE,
                "'record' field needs a record description",
                path,
            )
        return _record_node(spec.record, path, spec.description)

    # map
    if spec.key_kind != "string":
        raise SchemaError(
            SchemaErrorKind.UNSUPPORTED_TYPE,
            f"Maps with '{spec.key_kind}' keys cannot be expressed, keys must be strings",
            path,
        )
    return define_object({}, additional_properties=True, description=spec.description)


def _record_node(spec: RecordSpec, path: str, description: str | None = None) -> ObjectNode:
    properties: dict[str, SchemaNode] = {}
    required: list[str] = []

    for field_spec in spec.fields:
        if not field_spec.name:
            raise SchemaError(
                SchemaErrorKind.UNSUPPORTED_TYPE,
                f"Field of record '{spec.name}' has no name",
                path,
            )
        field_path = f"{path}/properties/{field_spec.name}"
        if field_spec.name in properties:
            raise SchemaError(
                SchemaErrorKind.INVALID_CONSTRAINT,
                f"Duplicate field '{field_spec.name}' in record '{spec.name}'",
                field_path,
            )
        try:
            properties[field_spec.name] = _field_node(field_spec, field_path)
        except SchemaError as e:
            if e.path == "#":
                raise SchemaError(e.kind, e.detail, field_path) from e
            raise
        if not field_spec.nullable:
            required.append(field_spec.name)

    return define_object(
        properties,
        required=required,
        additional_properties=spec.additional_properties,
        description=description or spec.description,
    )


def generate_from_type(spec: RecordSpec | dict[str, Any]) -> ObjectNode:
    """Derive an object schema from a record description.

    Args:
        spec: A :class:`RecordSpec`, or a plain dict with the same shape.

    Returns:
        Object node with one property per field, in field order.

    Raises:
        SchemaError: UNSUPPORTED_TYPE for kinds that cannot be mapped.
    """
    if not isinstance(spec, RecordSpec):
        spec = RecordSpec.model_validate(spec)

    node = _record_node(spec, "#")
    log.debug("schema_derived", record=spec.name, properties=len(node.properties))
    return node


def load_record_spec(path: Path) -> RecordSpec:
    """Load a record description from a YAML (or JSON) file."""
    from ruamel.yaml import YAML

    yaml = YAML(typ="safe")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.load(f)

    return RecordSpec.model_validate(data)
