"""Decode failures raised while building entities from records.

Every failure names the field that caused it. Absence of a value is never an
error at the accessor level; only decoders turn absence into
``RequiredFieldMissing``.
"""

from enum import StrEnum


class DecodeErrorKind(StrEnum):
    REQUIRED_FIELD_MISSING = "required_field_missing"
    TYPE_MISMATCH = "type_mismatch"
    PARSE_FAILURE = "parse_failure"
    MALFORMED_SOURCE = "malformed_source"


class DecodeError(Exception):
    """Base class for failures while decoding a record into an entity."""

    kind: DecodeErrorKind

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class RequiredFieldMissing(DecodeError):
    """Raised when a decoder needs a field that is null or absent."""

    kind = DecodeErrorKind.REQUIRED_FIELD_MISSING

    def __init__(self, field: str) -> None:
        super().__init__(field, f"required field '{field}' is missing")


class TypeMismatch(DecodeError, TypeError):
    """Raised when a stored value cannot be coerced to the requested type."""

    kind = DecodeErrorKind.TYPE_MISMATCH

    def __init__(self, field: str, expected: str, actual: object) -> None:
        super().__init__(
            field,
            f"field '{field}' expected {expected}, got {type(actual).__name__}",
        )
        self.expected = expected
        self.actual = actual


class ParseFailure(DecodeError, ValueError):
    """Raised when text content does not conform to the expected format."""

    kind = DecodeErrorKind.PARSE_FAILURE

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(field, f"field '{field}' could not be parsed: {reason}")
        self.reason = reason


class MalformedSource(DecodeError, ValueError):
    """Raised when the raw bytes of a nested record list are not valid JSON."""

    kind = DecodeErrorKind.MALFORMED_SOURCE

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(field, f"field '{field}' is not valid JSON: {reason}")
        self.reason = reason


class UnsupportedDialectError(ValueError):
    """Raised when no aggregate story query exists for an engine's dialect."""


__all__ = [
    "DecodeError",
    "DecodeErrorKind",
    "MalformedSource",
    "ParseFailure",
    "RequiredFieldMissing",
    "TypeMismatch",
    "UnsupportedDialectError",
]
