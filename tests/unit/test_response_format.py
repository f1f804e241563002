"""Tests for response formats, strict mode and structured output parsing."""

from __future__ import annotations

import json

import jsonschema
import pytest

from structcall.schema import (
    ResponseFormat,
    SchemaError,
    StructuredOutputError,
    define_array,
    define_enum,
    define_integer,
    define_object,
    define_string,
    parse_structured_output,
    to_json_schema,
    to_strict_json_schema,
)


def _answer_schema():
    return define_object(
        {
            "answer": define_string(),
            "confidence": define_integer(minimum=0, maximum=100),
            "mood": define_enum(["calm", "tense"]),
            "sources": define_array(
                define_object({"url": define_string(), "title": define_string()}, ["url"])
            ),
        },
        required=["answer"],
    )


# --- Wire payloads ---


def test_text_and_json_object_payloads() -> None:
    assert ResponseFormat.text().to_wire() == {"type": "text"}
    assert ResponseFormat.json_object().to_wire() == {"type": "json_object"}


def test_json_schema_payload_strict() -> None:
    fmt = ResponseFormat.json_schema("answer", _answer_schema(), description="An answer")

    wire = fmt.to_wire()

    assert wire["type"] == "json_schema"
    assert wire["json_schema"]["name"] == "answer"
    assert wire["json_schema"]["strict"] is True
    assert wire["json_schema"]["description"] == "An answer"
    assert wire["json_schema"]["schema"]["additionalProperties"] is False


def test_json_schema_payload_non_strict_uses_plain_schema() -> None:
    schema = _answer_schema()
    fmt = ResponseFormat.json_schema("answer", schema, strict=False)

    wire = fmt.to_wire()

    assert "strict" not in wire["json_schema"]
    assert wire["json_schema"]["schema"] == to_json_schema(schema)


def test_json_schema_invalid_name() -> None:
    with pytest.raises(ValueError, match="Invalid schema name"):
        ResponseFormat.json_schema("has spaces", _answer_schema())


def test_json_schema_validates_limits() -> None:
    node = define_object({"leaf": define_string()})
    for _ in range(5):
        node = define_object({"child": node})

    with pytest.raises(SchemaError):
        ResponseFormat.json_schema("deep", node)


# --- Strict conversion ---


def test_strict_schema_requires_every_property() -> None:
    strict = to_strict_json_schema(_answer_schema())

    assert strict["required"] == ["answer", "confidence", "mood", "sources"]
    assert strict["additionalProperties"] is False
    source = strict["properties"]["sources"]["items"]
    assert source["required"] == ["url", "title"]
    assert source["additionalProperties"] is False


def test_strict_schema_makes_optional_fields_nullable() -> None:
    strict = to_strict_json_schema(_answer_schema())

    assert strict["properties"]["answer"]["type"] == "string"
    assert strict["properties"]["confidence"]["type"] == ["integer", "null"]
    assert strict["properties"]["mood"]["type"] == ["string", "null"]
    assert strict["properties"]["mood"]["enum"] == ["calm", "tense", None]
    assert strict["properties"]["sources"]["type"] == ["array", "null"]
    title = strict["properties"]["sources"]["items"]["properties"]["title"]
    assert title["type"] == ["string", "null"]


def test_strict_schema_does_not_modify_tree() -> None:
    schema = _answer_schema()
    before = to_json_schema(schema)

    to_strict_json_schema(schema)

    assert to_json_schema(schema) == before
    assert schema.required == frozenset({"answer"})


def test_strict_schema_is_valid_json_schema() -> None:
    jsonschema.Draft202012Validator.check_schema(to_strict_json_schema(_answer_schema()))


# --- Parsing ---


def test_parse_text_returns_content() -> None:
    assert parse_structured_output("hello", ResponseFormat.text()) == "hello"


def test_parse_json_object() -> None:
    assert parse_structured_output('{"a": 1}', ResponseFormat.json_object()) == {"a": 1}


def test_parse_json_object_rejects_array() -> None:
    with pytest.raises(StructuredOutputError, match="not a JSON object"):
        parse_structured_output("[1, 2]", ResponseFormat.json_object())


def test_parse_invalid_json() -> None:
    with pytest.raises(StructuredOutputError) as exc_info:
        parse_structured_output("{not json", ResponseFormat.json_object())

    assert exc_info.value.content == "{not json"


def test_parse_strict_schema_accepts_nulls_for_optional_fields() -> None:
    fmt = ResponseFormat.json_schema("answer", _answer_schema())
    content = json.dumps({"answer": "42", "confidence": None, "mood": None, "sources": None})

    assert parse_structured_output(content, fmt)["answer"] == "42"


def test_parse_schema_mismatch_lists_errors() -> None:
    fmt = ResponseFormat.json_schema("answer", _answer_schema(), strict=False)

    with pytest.raises(StructuredOutputError) as exc_info:
        parse_structured_output('{"confidence": 300}', fmt)

    errors = exc_info.value.errors
    assert any("'answer' is a required property" in e for e in errors)
    assert any(e.startswith("confidence:") for e in errors)
