"""Tests for builtin query language functions."""

from __future__ import annotations

from datetime import datetime

import pytest

from notedql.query_language import (
    EvalContext,
    Evaluator,
    FunctionLibrary,
    QueryRuntimeError,
    UnknownFunctionError,
    parse_expression,
)


NOW = datetime(2024, 3, 15, 14, 30, 0)


def _evaluate(expression: str, fields: dict[str, object] | None = None) -> object:
    evaluator = Evaluator(FunctionLibrary(NOW))
    return evaluator.evaluate(parse_expression(expression), EvalContext(fields or {}))


@pytest.mark.parametrize(
    ("expression", "expected"),
    [
        ('date("today")', datetime(2024, 3, 15)),
        ('date("tomorrow")', datetime(2024, 3, 16)),
        ('date("yesterday")', datetime(2024, 3, 14)),
        ('date("now")', NOW),
        ('date("2024-02-01")', datetime(2024, 2, 1)),
        ('date("2024-02-01T10:15:00")', datetime(2024, 2, 1, 10, 15)),
        ('date("garbage")', None),
        ("date(true)", None),
    ],
)
def test_date_parses_keywords_and_strings(expression: str, expected: object) -> None:
    """date() resolves relative keywords against the captured clock."""
    assert _evaluate(expression) == expected


def test_date_from_epoch_milliseconds() -> None:
    expected = datetime.fromtimestamp(86400)

    assert _evaluate("date(86400000)") == expected


def test_dateformat_substitutes_tokens() -> None:
    fields: dict[str, object] = {"d": datetime(2024, 1, 5, 9, 7, 3)}

    assert _evaluate('dateformat(d, "YYYY-MM-DD HH:mm:ss")', fields) == "2024-01-05 09:07:03"
    assert _evaluate('dateformat(d, "DD/MM/YY")', fields) == "05/01/24"
    assert _evaluate('dateformat("2024-06-30", "YYYY")') == "2024"
    assert _evaluate('dateformat(5, "YYYY")') is None


@pytest.mark.parametrize(
    ("text", "seconds"),
    [
        ("1d 2h", 93600),
        ("2 hours 30 minutes", 9000),
        ("1w", 604800),
        ("90s", 90),
        ("3 mins", 180),
        ("nothing", 0),
    ],
)
def test_dur_sums_components(text: str, seconds: int) -> None:
    """dur() adds all duration components into seconds."""
    assert _evaluate(f'dur("{text}")') == seconds


def test_dur_non_string_is_zero() -> None:
    assert _evaluate("dur(5)") == 0


def test_contains() -> None:
    """contains() checks array membership and substrings."""
    fields: dict[str, object] = {"tags": ["a", "b"], "nested": [[1, 2]]}

    assert _evaluate('contains(tags, "a")', fields) is True
    assert _evaluate('contains(tags, "z")', fields) is False
    assert _evaluate('contains("hello", "ell")', fields) is True
    assert _evaluate("contains(nested, list(1, 2))", fields) is True
    assert _evaluate('contains(null, "a")', fields) is False


def test_length_and_join() -> None:
    fields: dict[str, object] = {"tags": ["a", "b", "c"], "meta": {"x": 1}}

    assert _evaluate("length(tags)", fields) == 3
    assert _evaluate('length("abcd")') == 4
    assert _evaluate("length(meta)", fields) == 1
    assert _evaluate("length(null)") == 0
    assert _evaluate("join(tags)", fields) == "a, b, c"
    assert _evaluate('join(tags, "|")', fields) == "a|b|c"


def test_sort_reverse_and_list() -> None:
    assert _evaluate("sort(list(3, 1, 2))") == [1, 2, 3]
    assert _evaluate('sort(list(3, 1, 2), "desc")') == [3, 2, 1]
    assert _evaluate("reverse(list(1, 2, 3))") == [3, 2, 1]
    assert _evaluate("list()") == []


def test_filter_and_map_apply_lambdas() -> None:
    """filter() and map() evaluate lambdas per item."""
    fields: dict[str, object] = {"values": [1, 2, 3, 4]}

    assert _evaluate("filter(values, (v) => v % 2 = 0)", fields) == [2, 4]
    assert _evaluate("map(values, v => v * 10)", fields) == [10, 20, 30, 40]
    assert _evaluate("filter(values, 1)", fields) == [1, 2, 3, 4]


def test_string_functions() -> None:
    assert _evaluate('lower("AbC")') == "abc"
    assert _evaluate('upper("AbC")') == "ABC"
    assert _evaluate('split("a,b,c")') == ["a", "b", "c"]
    assert _evaluate('split("a b", " ")') == ["a", "b"]
    assert _evaluate('startswith("project", "pro")') is True
    assert _evaluate('endswith("project", "ject")') is True
    assert _evaluate('substring("abcdef", 1, 3)') == "bc"
    assert _evaluate('substring("abcdef", 4, 1)') == "bcd"
    assert _evaluate('substring("abc", -5, 99)') == "abc"


def test_replace_and_regex_functions() -> None:
    """Regex helpers use Python regular expressions and replacement templates."""
    assert _evaluate('replace("a-b-c", "-", "+")') == "a+b+c"
    assert _evaluate('regexmatch("task-42", "\\\\d+")') is True
    assert _evaluate('regexmatch("task", "\\\\d+")') is False
    assert _evaluate('regexreplace("2024-01-05", "(\\\\d+)-(\\\\d+)-(\\\\d+)", "\\\\3.\\\\2.\\\\1")') == (
        "05.01.2024"
    )
    assert _evaluate('regexreplace("abc", "(", "x")') == "abc"


def test_replace_invalid_pattern_raises() -> None:
    with pytest.raises(QueryRuntimeError, match="Invalid regular expression"):
        _evaluate('replace("abc", "(", "x")')


def test_utility_functions() -> None:
    assert _evaluate("default(missing, 5)") == 5
    assert _evaluate("default(0, 5)") == 0
    assert _evaluate('choice(true, "y", "n")') == "y"
    assert _evaluate('choice("", "y", "n")') == "n"


@pytest.mark.parametrize(
    ("expression", "expected"),
    [
        ("round(2.5)", 3),
        ("round(-2.5)", -2),
        ("round(1.234, 2)", 1.23),
        ('round("7.6 points")', 8),
        ("round(null)", None),
    ],
)
def test_round_half_up(expression: str, expected: object) -> None:
    assert _evaluate(expression) == expected


def test_numeric_aggregates_flatten_nested_arrays() -> None:
    fields: dict[str, object] = {"values": [1, [2, 3], "4", "x"]}

    assert _evaluate("sum(values)", fields) == 10
    assert _evaluate("min(values, 0)", fields) == 0
    assert _evaluate("max(values)", fields) == 4
    assert _evaluate("average(values)", fields) == 2.5
    assert _evaluate("average(list())") is None
    assert _evaluate("sum()") == 0


def test_wrong_argument_count_raises() -> None:
    with pytest.raises(QueryRuntimeError, match="Invalid arguments for lower"):
        _evaluate("lower()")


def test_function_names_are_case_insensitive() -> None:
    assert _evaluate('DUR("2 minutes")') == 120
    assert _evaluate('Lower("ABC")') == "abc"


@pytest.mark.parametrize(
    "expression",
    ["round(1.5, 400)", "round(1.5, -400)", "substring(s, 0, big)"],
)
def test_arithmetic_failures_become_runtime_errors(expression: str) -> None:
    with pytest.raises(QueryRuntimeError, match="Arithmetic error"):
        _evaluate(expression, {"s": "text", "big": float("inf")})


def test_round_passes_infinity_through() -> None:
    assert _evaluate("round(x)", {"x": float("inf")}) == float("inf")


def test_function_library_unknown_name() -> None:
    library = FunctionLibrary(NOW)

    with pytest.raises(UnknownFunctionError):
        library.call("nope", [], lambda function, item: None)
