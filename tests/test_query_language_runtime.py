"""Sanity tests for query language runtime evaluation."""

from __future__ import annotations

from datetime import datetime
from itertools import product

import pytest

from notedql.query_language import (
    EvalContext,
    Evaluator,
    QueryRuntimeError,
    TypeMismatchError,
    UnknownFunctionError,
    parse_expression,
)
from notedql.query_language.values import LambdaValue


def _evaluate(expression: str, fields: dict[str, object] | None = None, **file: object) -> object:
    context = EvalContext(fields or {}, file)
    return Evaluator().evaluate(parse_expression(expression), context)


def test_runtime_field_lookup_and_missing_identifier() -> None:
    """Fields resolve by name and unknown identifiers are null."""
    assert _evaluate("status", {"status": "open"}) == "open"
    assert _evaluate("missing", {"status": "open"}) is None


def test_runtime_file_identifier_exposes_metadata() -> None:
    """`file` resolves to the file metadata mapping."""
    assert _evaluate("file.name", {}, name="Alpha", path="proj/alpha.md") == "Alpha"
    assert _evaluate("file.missing", {}, name="Alpha") is None


def test_runtime_property_access_on_null_is_null() -> None:
    assert _evaluate("a.b.c", {"a": None}) is None
    assert _evaluate("a.b", {"a": 5}) is None


def test_runtime_array_indexing() -> None:
    """Arrays support numeric indices and the length pseudo-property."""
    fields: dict[str, object] = {"tags": ["a", "b", "c"], "i": 2}

    assert _evaluate("tags[0]", fields) == "a"
    assert _evaluate("tags[i]", fields) == "c"
    assert _evaluate("tags[5]", fields) is None
    assert _evaluate("tags[-1]", fields) is None
    assert _evaluate('tags["x"]', fields) is None
    assert _evaluate("tags.length", fields) == 3


def test_runtime_object_property_access() -> None:
    fields: dict[str, object] = {"meta": {"owner": "kim", "1": "one"}}

    assert _evaluate("meta.owner", fields) == "kim"
    assert _evaluate('meta["owner"]', fields) == "kim"
    assert _evaluate("meta[1]", fields) == "one"
    assert _evaluate("meta.other", fields) is None


def test_runtime_date_equality_against_string() -> None:
    """Dates compare by instant against parseable date strings."""
    fields: dict[str, object] = {"d": datetime(2024, 1, 1)}

    assert _evaluate('d = "2024-01-01"', fields) is True
    assert _evaluate('d != "2024-01-02"', fields) is True
    assert _evaluate('d < "2024-01-02"', fields) is True
    assert _evaluate('d = "not a date"', fields) is False


def test_runtime_mixed_type_ordering_is_false() -> None:
    """Numbers and strings are not ordered against each other."""
    assert _evaluate('1 < "2"') is False
    assert _evaluate('1 > "2"') is False
    assert _evaluate('1 = "1"') is False


def test_runtime_less_equal_is_equal_or_less() -> None:
    assert _evaluate("2 <= 2") is True
    assert _evaluate("1 <= 2") is True
    assert _evaluate("3 >= 4") is False
    assert _evaluate('1 <= "1"') is False


def test_runtime_deep_array_equality() -> None:
    fields: dict[str, object] = {"a": [1, [2, 3]], "b": [1, [2, 3]], "c": [1, [2]]}

    assert _evaluate("a = b", fields) is True
    assert _evaluate("a = c", fields) is False


def test_runtime_logical_operators_short_circuit() -> None:
    """AND / OR return booleans and skip the right side when decided."""
    assert _evaluate("0 OR 'x'") is True
    assert _evaluate("1 AND ''") is False
    assert _evaluate("false AND unknownfn()") is False
    assert _evaluate("true OR unknownfn()") is True


@pytest.mark.parametrize(("a", "b", "c"), list(product([True, False], repeat=3)))
def test_runtime_and_binds_tighter_than_or(a: bool, b: bool, c: bool) -> None:
    """`a AND b OR c` evaluates like `(a AND b) OR c` for every assignment."""
    fields: dict[str, object] = {"a": a, "b": b, "c": c}

    assert _evaluate("a AND b OR c", fields) is _evaluate("(a AND b) OR c", fields)
    assert _evaluate("a AND b OR c", fields) is ((a and b) or c)


def test_runtime_truthiness() -> None:
    """null, false, 0, empty string and empty array are falsy."""
    fields: dict[str, object] = {"empty": [], "full": [0], "obj": {}}

    assert _evaluate("NOT null") is True
    assert _evaluate("NOT 0") is True
    assert _evaluate("NOT ''") is True
    assert _evaluate("NOT empty", fields) is True
    assert _evaluate("NOT full", fields) is False
    assert _evaluate("NOT obj", fields) is False


def test_runtime_arithmetic() -> None:
    assert _evaluate("1 + 2 * 3") == 7
    assert _evaluate("7 / 2") == 3.5
    assert _evaluate("-7 % 3") == -1
    assert _evaluate("7.5 % 2") == 1.5
    assert _evaluate("-(2 + 3)") == -5


def test_runtime_arithmetic_requires_numbers() -> None:
    """Arithmetic on non-numbers raises a type mismatch."""
    with pytest.raises(TypeMismatchError):
        _evaluate('"a" + 1')
    with pytest.raises(TypeMismatchError):
        _evaluate("true * 2")
    with pytest.raises(TypeMismatchError):
        _evaluate('-"x"')


def test_runtime_division_by_zero_raises() -> None:
    with pytest.raises(QueryRuntimeError, match="Division by zero"):
        _evaluate("1 / 0")
    with pytest.raises(QueryRuntimeError, match="Modulo by zero"):
        _evaluate("1 % 0")


def test_runtime_numeric_overflow_raises_runtime_error() -> None:
    """Overflow and domain errors surface as row-local runtime errors."""
    with pytest.raises(QueryRuntimeError, match="Arithmetic error"):
        _evaluate("big / 2", {"big": 10**400})
    with pytest.raises(QueryRuntimeError, match="Arithmetic error"):
        _evaluate("x % 2", {"x": float("inf")})
    assert _evaluate("big", {"big": 10**400}) == 10**400
    assert _evaluate("NOT big", {"big": 10**400}) is False


def test_runtime_unknown_function_raises() -> None:
    """Unknown function names raise UnknownFunctionError with the name."""
    with pytest.raises(UnknownFunctionError) as exc_info:
        _evaluate("frobnicate(1)")

    assert exc_info.value.name == "frobnicate"


def test_runtime_function_names_are_case_insensitive() -> None:
    assert _evaluate('UPPER("abc")') == "ABC"


def test_runtime_lambda_evaluates_to_function_value() -> None:
    value = _evaluate("(x) => x + 1")

    assert isinstance(value, LambdaValue)
    assert value.parameter == "x"


def test_runtime_lambda_scope_shadows_fields() -> None:
    """Lambda parameters are bound over the row fields without replacing them."""
    fields: dict[str, object] = {"x": 100, "offset": 1, "values": [1, 2]}

    assert _evaluate("map(values, (x) => x + offset)", fields) == [2, 3]
    assert _evaluate("x", fields) == 100


def test_eval_context_bind_returns_child_context() -> None:
    context = EvalContext({"a": 1})
    child = context.bind("x", 5)

    assert child.scope == {"x": 5}
    assert context.scope == {}
    assert child.fields is context.fields
