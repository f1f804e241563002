"""Schema construction and validation errors."""

from __future__ import annotations

from enum import Enum, auto


class SchemaErrorKind(Enum):
    """Categories of schema errors.

    All of them are local, construction/validation-time failures and are
    never retried automatically.
    """

    UNSUPPORTED_TYPE = auto()  # Type cannot be expressed as a schema node
    TOO_DEEPLY_NESTED = auto()  # Object-in-object depth above the host ceiling
    TOO_MANY_PROPERTIES = auto()  # Object node count above the host ceiling
    INVALID_REQUIRED = auto()  # Required name missing from properties
    EMPTY_ENUM = auto()  # Enum with no values
    INVALID_CONSTRAINT = auto()  # Contradictory or out-of-range constraint


class SchemaError(ValueError):
    """Raised when a schema node cannot be built or fails validation.

    Attributes:
        kind: Error category.
        path: Location of the offending node (e.g. ``"#/properties/address"``).
        detail: The message without the location suffix.
    """

    def __init__(self, kind: SchemaErrorKind, message: str, path: str = "#") -> None:
        self.kind = kind
        self.path = path
        self.detail = message
        super().__init__(f"{message} (at {path})")
