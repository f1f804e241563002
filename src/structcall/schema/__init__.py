"""Schema node trees for structured outputs and tool parameters.

This package provides the node model, builder functions, validation against
host limits, derivation from record descriptions, and response formats.
"""

from structcall.schema.builder import (
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_OBJECTS,
    define_array,
    define_boolean,
    define_enum,
    define_integer,
    define_null,
    define_number,
    define_object,
    define_string,
    validate,
)
from structcall.schema.derive import FieldSpec, RecordSpec, generate_from_type, load_record_spec
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
    SchemaStats,
    StringNode,
    from_json_schema,
    schema_stats,
    to_json_schema,
)
from structcall.schema.response_format import (
    ResponseFormat,
    ResponseFormatType,
    StructuredOutputError,
    parse_structured_output,
    to_strict_json_schema,
)

__all__ = [
    "DEFAULT_MAX_DEPTH",
    "DEFAULT_MAX_OBJECTS",
    "ArrayNode",
    "BooleanNode",
    "EnumNode",
    "FieldSpec",
    "IntegerNode",
    "NullNode",
    "NumberNode",
    "ObjectNode",
    "RecordSpec",
    "ResponseFormat",
    "ResponseFormatType",
    "SchemaError",
    "SchemaErrorKind",
    "SchemaNode",
    "SchemaStats",
    "StringNode",
    "StructuredOutputError",
    "define_array",
    "define_boolean",
    "define_enum",
    "define_integer",
    "define_null",
    "define_number",
    "define_object",
    "define_string",
    "from_json_schema",
    "generate_from_type",
    "load_record_spec",
    "parse_structured_output",
    "schema_stats",
    "to_json_schema",
    "to_strict_json_schema",
    "validate",
]
