"""Typed field accessors over SQL result rows and parsed JSON objects.

Decoders read fields through :class:`Record` without knowing whether the
values come from a database row or from a JSON object nested inside one of
the row's columns. Both variants share the same lookup contract:

- a null or missing field reads as ``None``, never as an error;
- a value that cannot be coerced to the requested type raises
  :class:`~storydb.errors.TypeMismatch`;
- text that does not match the expected format raises
  :class:`~storydb.errors.ParseFailure`.

A row's JSON-aggregated column becomes a list of :class:`JsonRecord` children
in :meth:`RowRecord.nested_records`. That conversion is the only point where a
row hands over to the JSON variant.
"""

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any, TypeVar

from sqlalchemy.engine import Row

from storydb.errors import MalformedSource, ParseFailure, TypeMismatch

T = TypeVar("T")

RowLike = Row[Any] | Mapping[str, Any]

_JSON_TEXT_TYPES = (str, bytes, bytearray, memoryview)
_INTEGER_TEXT = re.compile(r"[+-]?\d+")
# Date, "T", time with optional seconds and fraction, then a mandatory offset.
_ISO_DATE_TIME = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2}(?:\.\d{1,6})?)?(?:Z|[+-]\d{2}:\d{2})"
)


class Record(ABC):
    """Read-only, typed, by-name view over a single source record."""

    @staticmethod
    def from_row(row: RowLike) -> "RowRecord":
        return RowRecord(row)

    @staticmethod
    def from_json_object(obj: Mapping[str, Any]) -> "JsonRecord":
        return JsonRecord(obj)

    @abstractmethod
    def _get(self, key: str) -> Any:
        """Return the raw value for ``key``, or None when null or missing."""

    @abstractmethod
    def timestamp(self, key: str) -> datetime | None:
        """Return the field as a timezone-aware datetime."""

    @abstractmethod
    def nested_records(self, key: str) -> list["Record"] | None:
        """Return the JSON objects of an array field as child records.

        Array elements that are not JSON objects are dropped.
        """

    def string(self, key: str) -> str | None:
        value = self._get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            raise TypeMismatch(key, "string", value)
        return value

    def int(self, key: str) -> int | None:
        value = self._get(key)
        if value is None:
            return None
        return coerce_int(key, value)


class RowRecord(Record):
    """Record backed by a native query result row."""

    def __init__(self, row: RowLike) -> None:
        self._mapping: Mapping[str, Any] = row._mapping if isinstance(row, Row) else row

    def __repr__(self) -> str:
        return f"RowRecord({dict(self._mapping)!r})"

    def _get(self, key: str) -> Any:
        return self._mapping.get(key)

    def timestamp(self, key: str) -> datetime | None:
        value = self._get(key)
        if value is None:
            return None
        if isinstance(value, datetime):
            if value.tzinfo is None or value.utcoffset() is None:
                raise TypeMismatch(key, "timezone-aware timestamp", value)
            return value
        # SQLite has no temporal type and hands back formatted text.
        if isinstance(value, str):
            return parse_iso_datetime(key, value)
        raise TypeMismatch(key, "timestamp", value)

    def nested_records(self, key: str) -> list[Record] | None:
        value = self._get(key)
        if value is None:
            return None
        if isinstance(value, list):
            # Drivers such as psycopg decode json columns themselves.
            elements = value
        elif isinstance(value, _JSON_TEXT_TYPES):
            elements = parse_json_array(key, value)
        else:
            raise TypeMismatch(key, "JSON array", value)
        return [Record.from_json_object(obj) for obj in json_objects(elements)]


class JsonRecord(Record):
    """Record backed by an already-parsed JSON object."""

    def __init__(self, obj: Mapping[str, Any]) -> None:
        self._obj = obj

    def __repr__(self) -> str:
        return f"JsonRecord({self._obj!r})"

    def _get(self, key: str) -> Any:
        return self._obj.get(key)

    def timestamp(self, key: str) -> datetime | None:
        value = self._get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            raise TypeMismatch(key, "ISO-8601 date-time string", value)
        return parse_iso_datetime(key, value)

    def nested_records(self, key: str) -> list[Record] | None:
        value = self._get(key)
        if value is None:
            return None
        if not isinstance(value, list):
            raise TypeMismatch(key, "JSON array", value)
        return [Record.from_json_object(obj) for obj in json_objects(value)]


def coerce_int(key: str, value: Any) -> int:
    """Coerce ``value`` to an int, accepting only lossless conversions."""
    if isinstance(value, bool):
        raise TypeMismatch(key, "integer", value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, Decimal) and value.is_finite() and value == value.to_integral_value():
        return int(value)
    if isinstance(value, str) and _INTEGER_TEXT.fullmatch(value.strip()):
        return int(value)
    raise TypeMismatch(key, "integer", value)


def parse_iso_datetime(key: str, value: str) -> datetime:
    """Parse an ISO-8601 date-time that carries an explicit UTC offset."""
    if not _ISO_DATE_TIME.fullmatch(value):
        raise ParseFailure(key, f"{value!r} is not an ISO-8601 date-time with offset")
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise ParseFailure(key, str(e)) from e


def parse_json_array(key: str, raw: str | bytes | bytearray | memoryview) -> list[Any]:
    """Parse raw JSON text or bytes that must hold an array."""
    if isinstance(raw, memoryview):
        raw = raw.tobytes()
    try:
        parsed = json.loads(raw)
    except ValueError as e:
        raise MalformedSource(key, str(e)) from e
    except RecursionError as e:
        raise MalformedSource(key, "JSON nested too deeply") from e
    if not isinstance(parsed, list):
        raise ParseFailure(key, f"expected a JSON array, got {type(parsed).__name__}")
    return parsed


def json_objects(elements: Iterable[Any]) -> list[Mapping[str, Any]]:
    """Keep only the JSON objects of an array, preserving order."""
    return [element for element in elements if isinstance(element, dict)]


def map_records(rows: Iterable[RowLike], extractor: Callable[[Record], T | None]) -> list[T]:
    """Wrap each row as a record and apply ``extractor``.

    Rows for which the extractor returns None are skipped. Exceptions raised
    by the extractor propagate immediately.
    """
    results: list[T] = []
    for row in rows:
        value = extractor(Record.from_row(row))
        if value is not None:
            results.append(value)
    return results


__all__ = [
    "JsonRecord",
    "Record",
    "RowRecord",
    "coerce_int",
    "map_records",
    "parse_iso_datetime",
    "parse_json_array",
]
