"""Runtime value model for query language evaluation.

Values are plain Python objects drawn from a closed set of variants::

    Null    -> None
    Bool    -> bool
    Number  -> int | float
    String  -> str
    Date    -> datetime (naive, local time)
    Array   -> list
    Object  -> dict
    Function-> LambdaValue

"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import TypeAlias, cast

from notedql.query_language.ast import Expr
from notedql.query_language.errors import TypeMismatchError


@dataclass(frozen=True, slots=True)
class LambdaValue:
    """Function value produced by evaluating a lambda literal."""

    parameter: str
    body: Expr


Value: TypeAlias = (
    None | bool | int | float | str | datetime | list["Value"] | dict[str, "Value"] | LambdaValue
)


class ValueKind(StrEnum):
    """Runtime value variants."""

    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    DATE = "date"
    ARRAY = "array"
    OBJECT = "object"
    FUNCTION = "function"


_DATE_FORMATS = (
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
)

_LEADING_NUMBER = re.compile(r"\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+))")


def value_kind(value: object) -> ValueKind:
    """Classify a runtime value into its variant."""
    match value:
        case None:
            return ValueKind.NULL
        case bool():
            return ValueKind.BOOL
        case int() | float():
            return ValueKind.NUMBER
        case str():
            return ValueKind.STRING
        case datetime() | date():
            return ValueKind.DATE
        case list() | tuple():
            return ValueKind.ARRAY
        case dict():
            return ValueKind.OBJECT
        case LambdaValue():
            return ValueKind.FUNCTION
    raise TypeMismatchError(f"Unsupported runtime value of type {type(value).__name__}")


def is_number(value: object) -> bool:
    """Return whether value is a Number (booleans excluded)."""
    return value_kind(value) == ValueKind.NUMBER


def is_nan(number: int | float) -> bool:
    """Return whether number is NaN; ints of any size never are."""
    return isinstance(number, float) and math.isnan(number)


def normalize_datetime(value: datetime | date) -> datetime:
    """Return naive local datetime for date, datetime or aware datetime values."""
    if not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def parse_date_string(text: str) -> datetime | None:
    """Parse ISO-8601 and a few common written date formats, None on failure."""
    stripped = text.strip()
    if not stripped:
        return None
    try:
        return normalize_datetime(datetime.fromisoformat(stripped))
    except ValueError:
        pass
    for date_format in _DATE_FORMATS:
        try:
            return datetime.strptime(stripped, date_format)
        except ValueError:
            continue
    return None


def from_epoch_millis(value: int | float) -> datetime | None:
    """Convert epoch milliseconds into a local datetime."""
    try:
        return datetime.fromtimestamp(value / 1000)
    except (OverflowError, OSError, ValueError):
        return None


def coerce_date(value: object) -> datetime | None:
    """Interpret value as a Date where possible."""
    match value_kind(value):
        case ValueKind.DATE:
            return normalize_datetime(cast(datetime | date, value))
        case ValueKind.STRING:
            return parse_date_string(cast(str, value))
        case ValueKind.NUMBER:
            return from_epoch_millis(cast(int | float, value))
        case _:
            return None


def is_truthy(value: object) -> bool:
    """Return query-language truthiness."""
    match value_kind(value):
        case ValueKind.NULL:
            return False
        case ValueKind.BOOL:
            return cast(bool, value)
        case ValueKind.NUMBER:
            number = cast(int | float, value)
            return number != 0 and not is_nan(number)
        case ValueKind.STRING:
            return cast(str, value) != ""
        case ValueKind.ARRAY:
            return len(cast(list[object], value)) > 0
        case ValueKind.DATE | ValueKind.OBJECT | ValueKind.FUNCTION:
            return True


def deep_equal(left: object, right: object) -> bool:
    """Structural equality over arrays and objects; dates compare by instant."""
    left_kind = value_kind(left)
    right_kind = value_kind(right)
    if left_kind != right_kind:
        return False
    match left_kind:
        case ValueKind.DATE:
            return normalize_datetime(cast(datetime, left)) == normalize_datetime(
                cast(datetime, right)
            )
        case ValueKind.ARRAY:
            left_items = cast(list[object], left)
            right_items = cast(list[object], right)
            return len(left_items) == len(right_items) and all(
                deep_equal(a, b) for a, b in zip(left_items, right_items, strict=True)
            )
        case ValueKind.OBJECT:
            left_map = cast(dict[str, object], left)
            right_map = cast(dict[str, object], right)
            return left_map.keys() == right_map.keys() and all(
                deep_equal(item, right_map[key]) for key, item in left_map.items()
            )
        case _:
            return left == right


def values_equal(left: object, right: object) -> bool:
    """Apply `=` semantics: date-aware, deep for arrays, strict otherwise."""
    left_kind = value_kind(left)
    right_kind = value_kind(right)
    if ValueKind.DATE in (left_kind, right_kind):
        left_date = coerce_date(left)
        right_date = coerce_date(right)
        return left_date is not None and right_date is not None and left_date == right_date
    if left_kind == ValueKind.ARRAY and right_kind == ValueKind.ARRAY:
        return deep_equal(left, right)
    if left_kind != right_kind:
        return False
    if left_kind == ValueKind.FUNCTION:
        return left is right
    return deep_equal(left, right)


def less_than(left: object, right: object) -> bool:
    """Apply `<` semantics; incomparable combinations are never less."""
    left_kind = value_kind(left)
    right_kind = value_kind(right)
    if ValueKind.DATE in (left_kind, right_kind):
        left_date = coerce_date(left)
        right_date = coerce_date(right)
        return left_date is not None and right_date is not None and left_date < right_date
    if left_kind == right_kind == ValueKind.NUMBER:
        return cast(float, left) < cast(float, right)
    if left_kind == right_kind == ValueKind.STRING:
        return cast(str, left) < cast(str, right)
    return False


def compare_values(left: object, right: object) -> int:
    """Three-way comparison where incomparable values are equal."""
    if less_than(left, right):
        return -1
    if less_than(right, left):
        return 1
    return 0


def to_number(value: object) -> float | int | None:
    """Coerce numbers and numeric-prefixed strings to a number, None otherwise."""
    match value_kind(value):
        case ValueKind.NUMBER:
            number = cast(int | float, value)
            return None if is_nan(number) else number
        case ValueKind.STRING:
            leading = _LEADING_NUMBER.match(cast(str, value))
            if leading is None:
                return None
            return float(leading.group(1))
        case _:
            return None


def format_number(value: int | float) -> str:
    """Render numbers without a trailing `.0` for integral floats."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def to_display_string(value: object) -> str:
    """Stringify a value for string functions and output."""
    match value_kind(value):
        case ValueKind.NULL:
            return "null"
        case ValueKind.BOOL:
            return "true" if value else "false"
        case ValueKind.NUMBER:
            return format_number(cast(int | float, value))
        case ValueKind.STRING:
            return cast(str, value)
        case ValueKind.DATE:
            return normalize_datetime(cast(datetime, value)).isoformat()
        case ValueKind.ARRAY:
            return ",".join(to_display_string(item) for item in cast(list[object], value))
        case ValueKind.OBJECT:
            return json.dumps(to_json_compatible(value), ensure_ascii=False)
        case ValueKind.FUNCTION:
            return f"<lambda {cast(LambdaValue, value).parameter}>"


def to_json_compatible(value: object) -> object:
    """Convert a runtime value into JSON-serializable data."""
    match value_kind(value):
        case ValueKind.DATE:
            return normalize_datetime(cast(datetime, value)).isoformat()
        case ValueKind.ARRAY:
            return [to_json_compatible(item) for item in cast(list[object], value)]
        case ValueKind.OBJECT:
            return {
                str(key): to_json_compatible(item)
                for key, item in cast(dict[str, object], value).items()
            }
        case ValueKind.FUNCTION:
            return to_display_string(value)
        case ValueKind.NUMBER:
            number = cast(int | float, value)
            return None if isinstance(number, float) and not math.isfinite(number) else number
        case _:
            return value


def hashable_key(value: object) -> object:
    """Return a hashable canonical form used to bucket equal values together."""
    match value_kind(value):
        case ValueKind.NULL:
            return ("null",)
        case ValueKind.BOOL:
            return ("bool", value)
        case ValueKind.NUMBER:
            return ("number", value)
        case ValueKind.STRING:
            return ("string", value)
        case ValueKind.DATE:
            return ("date", normalize_datetime(cast(datetime, value)))
        case ValueKind.ARRAY:
            return ("array", tuple(hashable_key(item) for item in cast(list[object], value)))
        case ValueKind.OBJECT:
            items = cast(dict[str, object], value).items()
            return ("object", tuple(sorted((str(key), hashable_key(item)) for key, item in items)))
        case ValueKind.FUNCTION:
            return ("function", id(value))
