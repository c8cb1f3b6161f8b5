"""AST nodes for query language expressions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias


LiteralValue: TypeAlias = str | int | float | bool | None


@dataclass(frozen=True, slots=True)
class Expr:
    """Base AST expression type."""


@dataclass(frozen=True, slots=True)
class Literal(Expr):
    """String, number, boolean or null literal."""

    value: LiteralValue


@dataclass(frozen=True, slots=True)
class Identifier(Expr):
    """Name lookup against the evaluation context."""

    name: str


@dataclass(frozen=True, slots=True)
class Property(Expr):
    """Static property or index access, `obj.name` or `obj[0]`."""

    base: Expr
    key: str | int | float | bool | None


@dataclass(frozen=True, slots=True)
class DynamicIndex(Expr):
    """Index access whose key is computed per evaluation, `obj[expr]`."""

    base: Expr
    index: Expr


@dataclass(frozen=True, slots=True)
class BinaryOp(Expr):
    """Comparison or arithmetic operation."""

    operator: str
    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True)
class Logical(Expr):
    """Short-circuit AND / OR operation."""

    operator: str
    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True)
class Unary(Expr):
    """Unary NOT or numeric negation."""

    operator: str
    operand: Expr


@dataclass(frozen=True, slots=True)
class FunctionCall(Expr):
    """Builtin function invocation."""

    name: str
    arguments: tuple[Expr, ...]


@dataclass(frozen=True, slots=True)
class Lambda(Expr):
    """One-parameter function literal, `(x) => body`."""

    parameter: str
    body: Expr
