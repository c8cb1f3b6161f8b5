"""Tests for query language compiler entrypoints."""

from __future__ import annotations

import pytest

from notedql.query_language import (
    EvalContext,
    Evaluator,
    QueryParseError,
    compile_expr,
    compile_expression,
)
from notedql.query_language.ast import Literal


def test_compile_expr_wraps_parsed_ast() -> None:
    """compile_expr should evaluate the provided AST expression."""
    compiled = compile_expr(Literal(42))

    assert compiled.evaluate(EvalContext(), Evaluator()) == 42
    assert compiled.source == ""


def test_compile_expression_parses_once_and_evaluates_many() -> None:
    """One compiled expression should evaluate against many row contexts."""
    compiled = compile_expression("priority * 2")
    evaluator = Evaluator()

    results = [
        compiled.evaluate(EvalContext({"priority": value}), evaluator) for value in (1, 2, 3)
    ]

    assert results == [2, 4, 6]
    assert compiled.source == "priority * 2"


def test_compile_expression_raises_on_invalid_text() -> None:
    with pytest.raises(QueryParseError):
        compile_expression("priority *")
