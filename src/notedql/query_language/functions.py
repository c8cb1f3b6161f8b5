"""Builtin function library for query language expressions.

Functions are grouped in families:

* date: ``date``, ``dateformat``, ``dur``
* array: ``contains``, ``length``, ``join``, ``list``, ``sort``, ``reverse``, ``filter``, ``map``
* string: ``lower``, ``upper``, ``replace``, ``split``, ``regexmatch``, ``regexreplace``,
  ``substring``, ``startswith``, ``endswith``
* utility: ``default``, ``choice``, ``round``, ``min``, ``max``, ``sum``, ``average``

Every evaluator owns one `FunctionLibrary`; the name table itself is read-only.
"""

from __future__ import annotations

import inspect
import math
import re
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from functools import cmp_to_key
from types import MappingProxyType
from typing import TypeAlias, cast

from notedql.query_language.errors import QueryRuntimeError, UnknownFunctionError
from notedql.query_language.values import (
    LambdaValue,
    ValueKind,
    coerce_date,
    compare_values,
    deep_equal,
    from_epoch_millis,
    is_nan,
    is_number,
    is_truthy,
    parse_date_string,
    normalize_datetime,
    to_display_string,
    to_number,
    value_kind,
)


Builtin: TypeAlias = Callable[..., object]
LambdaApplier: TypeAlias = Callable[[LambdaValue, object], object]


_DURATION_PATTERN = re.compile(
    r"(\d+)\s*(weeks?|w|days?|d|hours?|hrs?|h|minutes?|mins?|m|seconds?|secs?|s)(?![A-Za-z])",
    re.IGNORECASE,
)

_DURATION_SECONDS = {
    "w": 604800,
    "d": 86400,
    "h": 3600,
    "m": 60,
    "s": 1,
}


def _relative_date(keyword: str, now: datetime) -> datetime | None:
    """Resolve today/tomorrow/yesterday/now against the captured clock."""
    midnight = datetime(now.year, now.month, now.day)
    match keyword:
        case "today":
            return midnight
        case "tomorrow":
            return midnight + timedelta(days=1)
        case "yesterday":
            return midnight - timedelta(days=1)
        case "now":
            return now
    return None


def _func_dateformat(value: object, date_format: object) -> object:
    if value_kind(date_format) != ValueKind.STRING:
        return None
    if value_kind(value) not in {ValueKind.DATE, ValueKind.STRING}:
        return None
    moment = coerce_date(value)
    if moment is None:
        return None

    result = cast(str, date_format)
    substitutions = (
        ("YYYY", f"{moment.year:04d}"),
        ("YY", f"{moment.year:04d}"[-2:]),
        ("MM", f"{moment.month:02d}"),
        ("DD", f"{moment.day:02d}"),
        ("HH", f"{moment.hour:02d}"),
        ("mm", f"{moment.minute:02d}"),
        ("ss", f"{moment.second:02d}"),
    )
    for token, replacement in substitutions:
        result = result.replace(token, replacement, 1)
    return result


def _func_dur(value: object) -> int:
    """Sum all duration components of a string into seconds."""
    if value_kind(value) != ValueKind.STRING:
        return 0
    total = 0
    for match in _DURATION_PATTERN.finditer(cast(str, value)):
        unit = match.group(2).lower()
        # "mins"/"minutes" and "m" share the minute multiplier
        total += int(match.group(1)) * _DURATION_SECONDS[unit[0]]
    return total


def _func_contains(container: object, value: object) -> bool:
    container_kind = value_kind(container)
    if container_kind == ValueKind.ARRAY:
        return any(deep_equal(item, value) for item in cast(list[object], container))
    if container_kind == ValueKind.STRING and value_kind(value) == ValueKind.STRING:
        return cast(str, value) in cast(str, container)
    if container is not None and value is not None:
        return to_display_string(value) in to_display_string(container)
    return False


def _func_length(value: object) -> int:
    match value_kind(value):
        case ValueKind.ARRAY:
            return len(cast(list[object], value))
        case ValueKind.STRING:
            return len(cast(str, value))
        case ValueKind.OBJECT:
            return len(cast(dict[str, object], value))
        case _:
            return 0


def _func_join(values: object, separator: object = ", ") -> str:
    if value_kind(values) != ValueKind.ARRAY:
        return to_display_string(values)
    return to_display_string(separator).join(
        to_display_string(item) for item in cast(list[object], values)
    )


def _func_list(*items: object) -> list[object]:
    return list(items)


def _func_sort(values: object, direction: object = "asc") -> object:
    """Stable sort by natural ordering; incomparable values keep their order."""
    if value_kind(values) != ValueKind.ARRAY:
        return values
    descending = to_display_string(direction).lower() == "desc"

    def comparator(left: object, right: object) -> int:
        result = compare_values(left, right)
        return -result if descending else result

    return sorted(cast(list[object], values), key=cmp_to_key(comparator))


def _func_reverse(values: object) -> object:
    if value_kind(values) != ValueKind.ARRAY:
        return values
    return list(reversed(cast(list[object], values)))


def _func_filter(apply: LambdaApplier, values: object, predicate: object = None) -> object:
    """Keep array items for which the lambda predicate is truthy."""
    if value_kind(values) != ValueKind.ARRAY or not isinstance(predicate, LambdaValue):
        return values
    return [item for item in cast(list[object], values) if is_truthy(apply(predicate, item))]


def _func_map(apply: LambdaApplier, values: object, transform: object = None) -> object:
    """Apply the lambda transform to each array item."""
    if value_kind(values) != ValueKind.ARRAY or not isinstance(transform, LambdaValue):
        return values
    return [apply(transform, item) for item in cast(list[object], values)]


def _func_lower(value: object) -> str:
    return to_display_string(value).lower()


def _func_upper(value: object) -> str:
    return to_display_string(value).upper()


def _compile_pattern(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern)
    except re.error:
        return None


def _substitute(pattern: re.Pattern[str], text: str, replacement: str) -> str | None:
    try:
        return pattern.sub(replacement, text)
    except re.error:
        return None


def _func_replace(value: object, pattern: object, replacement: object = "") -> str:
    """Replace every regex match of pattern."""
    if value_kind(value) != ValueKind.STRING:
        return to_display_string(value)
    text = cast(str, value)
    if value_kind(pattern) != ValueKind.STRING:
        return text
    compiled = _compile_pattern(cast(str, pattern))
    if compiled is None:
        raise QueryRuntimeError(f"Invalid regular expression: {pattern}")
    result = _substitute(compiled, text, to_display_string(replacement))
    if result is None:
        raise QueryRuntimeError(f"Invalid replacement: {replacement}")
    return result


def _func_split(value: object, separator: object = ",") -> list[str]:
    text = to_display_string(value)
    delimiter = to_display_string(separator)
    if delimiter == "":
        return list(text)
    return text.split(delimiter)


def _func_regexmatch(value: object, pattern: object) -> bool:
    if value_kind(value) != ValueKind.STRING or value_kind(pattern) != ValueKind.STRING:
        return False
    compiled = _compile_pattern(cast(str, pattern))
    if compiled is None:
        return False
    return compiled.search(cast(str, value)) is not None


def _func_regexreplace(value: object, pattern: object, replacement: object = "") -> str:
    """Replace every regex match, leaving the input unchanged on invalid patterns."""
    if value_kind(value) != ValueKind.STRING or value_kind(pattern) != ValueKind.STRING:
        return to_display_string(value)
    text = cast(str, value)
    compiled = _compile_pattern(cast(str, pattern))
    if compiled is None:
        return text
    result = _substitute(compiled, text, to_display_string(replacement))
    return text if result is None else result


def _index_argument(value: object, default: int) -> int:
    if not is_number(value) or is_nan(cast(float, value)):
        return default
    return int(cast(float, value))


def _func_substring(value: object, start: object = 0, end: object = None) -> str:
    """Slice between two clamped offsets, swapping them when start is past end."""
    text = to_display_string(value)
    begin = min(max(_index_argument(start, 0), 0), len(text))
    finish = min(max(_index_argument(end, len(text)), 0), len(text))
    if begin > finish:
        begin, finish = finish, begin
    return text[begin:finish]


def _func_startswith(value: object, prefix: object) -> bool:
    return to_display_string(value).startswith(to_display_string(prefix))


def _func_endswith(value: object, suffix: object) -> bool:
    return to_display_string(value).endswith(to_display_string(suffix))


def _func_default(value: object, fallback: object) -> object:
    return fallback if value is None else value


def _func_choice(condition: object, when_true: object, when_false: object) -> object:
    return when_true if is_truthy(condition) else when_false


def _func_round(value: object, decimals: object = 0) -> int | float | None:
    """Round half up to the given number of decimals."""
    number = to_number(value)
    if number is None:
        return None
    if isinstance(number, float) and math.isinf(number):
        return number
    places = _index_argument(decimals, 0)
    multiplier = 10**places
    rounded = math.floor(number * multiplier + 0.5) / multiplier
    if places <= 0 and rounded.is_integer():
        return int(rounded)
    return rounded


def _flatten(values: Iterable[object]) -> Iterable[object]:
    for value in values:
        if value_kind(value) == ValueKind.ARRAY:
            yield from _flatten(cast(list[object], value))
        else:
            yield value


def _numeric_values(values: tuple[object, ...]) -> list[int | float]:
    """Flatten nested arrays and keep values that coerce to numbers."""
    numbers = (to_number(value) for value in _flatten(values))
    return [number for number in numbers if number is not None]


def _func_min(*values: object) -> int | float | None:
    numbers = _numeric_values(values)
    return min(numbers) if numbers else None


def _func_max(*values: object) -> int | float | None:
    numbers = _numeric_values(values)
    return max(numbers) if numbers else None


def _func_sum(*values: object) -> int | float:
    return sum(_numeric_values(values), 0)


def _func_average(*values: object) -> float | None:
    numbers = _numeric_values(values)
    if not numbers:
        return None
    return sum(numbers) / len(numbers)


_PLAIN_FUNCTIONS: Mapping[str, Builtin] = MappingProxyType(
    {
        "dateformat": _func_dateformat,
        "dur": _func_dur,
        "contains": _func_contains,
        "length": _func_length,
        "join": _func_join,
        "list": _func_list,
        "sort": _func_sort,
        "reverse": _func_reverse,
        "lower": _func_lower,
        "upper": _func_upper,
        "replace": _func_replace,
        "split": _func_split,
        "regexmatch": _func_regexmatch,
        "regexreplace": _func_regexreplace,
        "substring": _func_substring,
        "startswith": _func_startswith,
        "endswith": _func_endswith,
        "default": _func_default,
        "choice": _func_choice,
        "round": _func_round,
        "min": _func_min,
        "max": _func_max,
        "sum": _func_sum,
        "average": _func_average,
    }
)

_HIGHER_ORDER_FUNCTIONS: Mapping[str, Builtin] = MappingProxyType(
    {
        "filter": _func_filter,
        "map": _func_map,
    }
)


class FunctionLibrary:
    """Name to builtin dispatch table owned by one evaluator.

    Args:
        now: Clock value used for relative dates such as ``date("today")``.
            Defaults to the local time at construction.
    """

    def __init__(self, now: datetime | None = None) -> None:
        self.now = normalize_datetime(now) if now is not None else datetime.now()
        functions: dict[str, Builtin] = {"date": self._func_date, **_PLAIN_FUNCTIONS}
        self._functions: Mapping[str, Builtin] = MappingProxyType(functions)
        self._signatures = MappingProxyType(
            {
                name: inspect.signature(function)
                for name, function in {**functions, **_HIGHER_ORDER_FUNCTIONS}.items()
            }
        )

    def call(self, name: str, arguments: list[object], apply: LambdaApplier) -> object:
        """Invoke builtin by case-insensitive name with evaluated arguments.

        Args:
            name: Function name as written in the expression.
            arguments: Already evaluated argument values.
            apply: Callback applying a lambda value to one item.

        Returns:
            The function result value.

        Raises:
            UnknownFunctionError: If no builtin has this name.
            QueryRuntimeError: If the argument count does not fit the function or
                its numbers overflow.
        """
        key = name.lower()
        if key not in self._signatures:
            raise UnknownFunctionError(name)

        higher_order = key in _HIGHER_ORDER_FUNCTIONS
        bound_arguments = [apply, *arguments] if higher_order else arguments
        try:
            self._signatures[key].bind(*bound_arguments)
        except TypeError as exc:
            raise QueryRuntimeError(f"Invalid arguments for {name}(): {exc}") from exc

        function = _HIGHER_ORDER_FUNCTIONS[key] if higher_order else self._functions[key]
        try:
            return function(*bound_arguments)
        except ArithmeticError as exc:
            raise QueryRuntimeError(f"Arithmetic error in {name}(): {exc}") from exc

    def _func_date(self, value: object) -> object:
        """Parse a date from a Date, string keyword, date string or epoch milliseconds."""
        match value_kind(value):
            case ValueKind.DATE:
                return coerce_date(value)
            case ValueKind.STRING:
                text = cast(str, value)
                relative = _relative_date(text.strip().lower(), self.now)
                if relative is not None:
                    return relative
                return parse_date_string(text)
            case ValueKind.NUMBER:
                number = cast(int | float, value)
                if is_nan(number):
                    return None
                return from_epoch_millis(number)
            case _:
                return None
