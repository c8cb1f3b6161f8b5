"""Compiler entrypoints for query language."""

from __future__ import annotations

from dataclasses import dataclass

from notedql.query_language.ast import Expr
from notedql.query_language.parser import parse_expression
from notedql.query_language.runtime import EvalContext, Evaluator


@dataclass(frozen=True, slots=True)
class CompiledExpression:
    """Expression parsed once and evaluated many times."""

    source: str
    expr: Expr

    def evaluate(self, context: EvalContext, evaluator: Evaluator) -> object:
        """Evaluate compiled expression against one row context."""
        return evaluator.evaluate(self.expr, context)


def compile_expr(expr: Expr, source: str = "") -> CompiledExpression:
    """Wrap already parsed expression."""
    return CompiledExpression(source, expr)


def compile_expression(text: str) -> CompiledExpression:
    """Parse and compile expression text."""
    return compile_expr(parse_expression(text), text)
