"""Tests for schema nodes and their JSON Schema wire form."""

from __future__ import annotations

import jsonschema
import pytest

from structcall.schema import (
    ArrayNode,
    EnumNode,
    IntegerNode,
    ObjectNode,
    SchemaError,
    SchemaErrorKind,
    StringNode,
    define_array,
    define_boolean,
    define_enum,
    define_integer,
    define_null,
    define_number,
    define_object,
    define_string,
    from_json_schema,
    schema_stats,
    to_json_schema,
)
from structcall.schema.nodes import iter_nodes


def _person() -> ObjectNode:
    address = define_object(
        {"street": define_string(), "city": define_string(min_length=1)},
        required=["city"],
        additional_properties=False,
    )
    return define_object(
        {
            "name": define_string("Full name", max_length=80),
            "age": define_integer(minimum=0, maximum=150),
            "height": define_number(multiple_of=0.01),
            "active": define_boolean(),
            "nickname": define_null(),
            "role": define_enum(["admin", "user"], "Access level"),
            "tags": define_array(define_string(), min_items=1, unique_items=True),
            "address": address,
        },
        required=["name", "age"],
        description="A person",
    )


# --- Serialization ---


def test_leaf_omits_unset_fields() -> None:
    """Unset constraints are not written."""
    assert to_json_schema(define_string()) == {"type": "string"}
    assert to_json_schema(define_integer()) == {"type": "integer"}


def test_string_constraints_use_json_schema_names() -> None:
    node = define_string("Code", min_length=2, max_length=4, pattern="^[A-Z]+$")

    assert to_json_schema(node) == {
        "type": "string",
        "description": "Code",
        "minLength": 2,
        "maxLength": 4,
        "pattern": "^[A-Z]+$",
    }


def test_enum_serializes_as_string_enum_in_order() -> None:
    assert to_json_schema(define_enum(["b", "a", "c"])) == {
        "type": "string",
        "enum": ["b", "a", "c"],
    }


def test_object_additional_properties_only_written_when_false() -> None:
    open_obj = to_json_schema(define_object({"a": define_string()}))
    closed_obj = to_json_schema(define_object({"a": define_string()}, additional_properties=False))

    assert "additionalProperties" not in open_obj
    assert closed_obj["additionalProperties"] is False


def test_object_required_follows_property_order() -> None:
    node = define_object(
        {"z": define_string(), "a": define_string(), "m": define_string()},
        required=["m", "z"],
    )

    wire = to_json_schema(node)
    assert list(wire["properties"]) == ["z", "a", "m"]
    assert wire["required"] == ["z", "m"]


def test_object_without_required_omits_key() -> None:
    assert "required" not in to_json_schema(define_object({"a": define_string()}))


def test_array_unique_items_only_written_when_true() -> None:
    assert "uniqueItems" not in to_json_schema(define_array(define_string()))
    assert to_json_schema(define_array(define_string(), unique_items=True))["uniqueItems"]


def test_object_enum_values_written() -> None:
    node = define_object({"a": define_integer()}, enum_values=[{"a": 1}, {"a": 2}])

    assert to_json_schema(node)["enum"] == [{"a": 1}, {"a": 2}]


def test_serialized_tree_is_valid_json_schema() -> None:
    jsonschema.Draft202012Validator.check_schema(to_json_schema(_person()))


# --- Round trip ---


def test_round_trip_preserves_structure() -> None:
    """Serialize, check with a JSON Schema validator, parse back."""
    original = _person()
    wire = to_json_schema(original)
    jsonschema.Draft202012Validator.check_schema(wire)

    parsed = from_json_schema(wire)

    assert isinstance(parsed, ObjectNode)
    assert list(parsed.properties) == list(original.properties)
    assert parsed.required == original.required
    address = parsed.properties["address"]
    assert isinstance(address, ObjectNode)
    assert address.required == frozenset({"city"})
    assert address.additional_properties is False
    assert parsed == original


def test_from_json_schema_rejects_unknown_type() -> None:
    with pytest.raises(SchemaError) as exc_info:
        from_json_schema({"type": "object", "properties": {"x": {"type": "date"}}})

    assert exc_info.value.kind is SchemaErrorKind.UNSUPPORTED_TYPE
    assert exc_info.value.path == "#/properties/x"


def test_from_json_schema_rejects_schema_valued_additional_properties() -> None:
    with pytest.raises(SchemaError) as exc_info:
        from_json_schema({"type": "object", "additionalProperties": {"type": "string"}})

    assert exc_info.value.kind is SchemaErrorKind.UNSUPPORTED_TYPE


def test_from_json_schema_reports_invalid_required_with_path() -> None:
    with pytest.raises(SchemaError) as exc_info:
        from_json_schema(
            {
                "type": "object",
                "properties": {
                    "inner": {"type": "object", "properties": {}, "required": ["x"]},
                },
            }
        )

    assert exc_info.value.kind is SchemaErrorKind.INVALID_REQUIRED
    assert exc_info.value.path == "#/properties/inner"


def test_from_json_schema_array_without_items() -> None:
    with pytest.raises(SchemaError, match="Array without items"):
        from_json_schema({"type": "array"})


def test_from_json_schema_parses_enum_and_numbers() -> None:
    assert from_json_schema({"type": "string", "enum": ["x", "y"]}) == EnumNode(("x", "y"))
    assert from_json_schema({"type": "integer", "minimum": 3}) == IntegerNode(minimum=3)


def test_from_json_schema_rejects_duplicate_enum_values() -> None:
    with pytest.raises(SchemaError) as exc_info:
        from_json_schema(
            {"type": "object", "properties": {"mood": {"type": "string", "enum": ["a", "a"]}}}
        )

    assert exc_info.value.kind is SchemaErrorKind.INVALID_CONSTRAINT
    assert exc_info.value.path == "#/properties/mood"


def test_from_json_schema_empty_enum() -> None:
    with pytest.raises(SchemaError) as exc_info:
        from_json_schema({"enum": []})

    assert exc_info.value.kind is SchemaErrorKind.EMPTY_ENUM


# --- Immutability ---


def test_nodes_are_frozen() -> None:
    node = define_string()
    with pytest.raises(AttributeError):
        node.description = "changed"  # type: ignore[misc]


def test_nodes_are_hashable() -> None:
    assert hash(_person()) == hash(_person())
    assert len({_person(), _person(), define_object({"a": define_string()})}) == 2


def test_object_with_object_enum_values_is_hashable() -> None:
    node = define_object({"a": define_string()}, enum_values=[{"a": "x"}])

    assert hash(node) == hash(define_object({"a": define_string()}, enum_values=[{"a": "x"}]))


def test_object_properties_are_read_only() -> None:
    node = define_object({"a": define_string()})
    with pytest.raises(TypeError):
        node.properties["b"] = define_string()  # type: ignore[index]


def test_object_node_rejects_undeclared_required() -> None:
    with pytest.raises(SchemaError) as exc_info:
        ObjectNode(properties={"a": StringNode()}, required=frozenset({"b"}))

    assert exc_info.value.kind is SchemaErrorKind.INVALID_REQUIRED


def test_enum_values_are_copied() -> None:
    values = ["a", "b"]
    node = define_enum(values)
    values.append("c")

    assert node.values == ("a", "b")


# --- Walking and stats ---


def test_iter_nodes_paths_and_depth() -> None:
    node = define_object(
        {"items": define_array(define_object({"x": define_integer()}))},
    )

    walked = [(path, depth) for path, _, depth in iter_nodes(node)]

    assert walked == [
        ("#", 1),
        ("#/properties/items", 1),
        ("#/properties/items/items", 2),
        ("#/properties/items/items/properties/x", 2),
    ]


def test_schema_stats_counts_objects_and_depth() -> None:
    stats = schema_stats(_person())

    assert stats.max_depth == 2
    assert stats.object_count == 2
    assert stats.node_count == 12


def test_arrays_do_not_add_depth() -> None:
    node = define_object({"list": define_array(define_array(define_string()))})

    assert isinstance(node.properties["list"], ArrayNode)
    assert schema_stats(node).max_depth == 1
