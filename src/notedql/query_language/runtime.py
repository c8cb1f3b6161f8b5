"""Runtime evaluation for query language expressions."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import cast

from notedql.query_language.ast import (
    BinaryOp,
    DynamicIndex,
    Expr,
    FunctionCall,
    Identifier,
    Lambda,
    Literal,
    Logical,
    Property,
    Unary,
)
from notedql.query_language.errors import QueryRuntimeError, TypeMismatchError
from notedql.query_language.functions import FunctionLibrary
from notedql.query_language.values import (
    LambdaValue,
    ValueKind,
    format_number,
    is_truthy,
    less_than,
    to_display_string,
    value_kind,
    values_equal,
)


_EMPTY: Mapping[str, object] = MappingProxyType({})


@dataclass(frozen=True, slots=True)
class EvalContext:
    """Read-only row view for one evaluation.

    `scope` holds lambda parameter bindings layered over the row.
    """

    fields: Mapping[str, object] = field(default_factory=dict)
    file: Mapping[str, object] = field(default_factory=dict)
    scope: Mapping[str, object] = field(default_factory=lambda: _EMPTY)

    def bind(self, name: str, value: object) -> EvalContext:
        """Return child context with one more scope binding."""
        return EvalContext(self.fields, self.file, MappingProxyType({**self.scope, name: value}))


class Evaluator:
    """Evaluate expression ASTs against row contexts."""

    def __init__(self, functions: FunctionLibrary | None = None) -> None:
        self.functions = functions if functions is not None else FunctionLibrary()

    def evaluate(self, expr: Expr, context: EvalContext) -> object:
        """Evaluate one expression tree to a runtime value."""
        match expr:
            case Literal(value=value):
                return value
            case Identifier(name=name):
                return _resolve_identifier(name, context)
            case Property(base=base, key=key):
                return _get_property(self.evaluate(base, context), key)
            case DynamicIndex(base=base, index=index):
                base_value = self.evaluate(base, context)
                return _get_property(base_value, self.evaluate(index, context))
            case BinaryOp(operator=operator, left=left, right=right):
                return _apply_binary_operator(
                    operator,
                    self.evaluate(left, context),
                    self.evaluate(right, context),
                )
            case Logical():
                return self._evaluate_logical(expr, context)
            case Unary(operator=operator, operand=operand):
                return _apply_unary_operator(operator, self.evaluate(operand, context))
            case FunctionCall(name=name, arguments=arguments):
                values = [self.evaluate(argument, context) for argument in arguments]
                return self.functions.call(
                    name,
                    values,
                    lambda function, item: self.apply_lambda(function, item, context),
                )
            case Lambda(parameter=parameter, body=body):
                return LambdaValue(parameter, body)
        raise QueryRuntimeError(f"Unsupported expression type: {type(expr).__name__}")

    def apply_lambda(self, function: LambdaValue, argument: object, context: EvalContext) -> object:
        """Evaluate lambda body with its parameter bound over context."""
        return self.evaluate(function.body, context.bind(function.parameter, argument))

    def _evaluate_logical(self, expr: Logical, context: EvalContext) -> bool:
        """Evaluate AND / OR with short-circuit."""
        left = is_truthy(self.evaluate(expr.left, context))
        if expr.operator == "AND":
            return left and is_truthy(self.evaluate(expr.right, context))
        if expr.operator == "OR":
            return left or is_truthy(self.evaluate(expr.right, context))
        raise QueryRuntimeError(f"Unsupported logical operator: {expr.operator}")


def _resolve_identifier(name: str, context: EvalContext) -> object:
    """Resolve lambda scope, `file`, then row fields; unknown names are null."""
    if name in context.scope:
        return context.scope[name]
    if name == "file":
        return dict(context.file)
    return context.fields.get(name)


def _get_property(base: object, key: object) -> object:
    """Read a property or index; anything missing resolves to null."""
    match value_kind(base):
        case ValueKind.ARRAY:
            items = cast(list[object], base)
            if key == "length":
                return len(items)
            if value_kind(key) != ValueKind.NUMBER:
                return None
            number = cast(int | float, key)
            if isinstance(number, float) and not number.is_integer():
                return None
            position = int(number)
            if 0 <= position < len(items):
                return items[position]
            return None
        case ValueKind.OBJECT:
            mapping = cast(Mapping[str, object], base)
            if value_kind(key) == ValueKind.NUMBER:
                return mapping.get(format_number(cast(int | float, key)))
            return mapping.get(to_display_string(key))
        case _:
            return None


def _apply_binary_operator(operator: str, left: object, right: object) -> object:
    """Apply one comparison or arithmetic operator to two values."""
    match operator:
        case "=":
            return values_equal(left, right)
        case "!=":
            return not values_equal(left, right)
        case "<":
            return less_than(left, right)
        case ">":
            return less_than(right, left)
        case "<=":
            return values_equal(left, right) or less_than(left, right)
        case ">=":
            return values_equal(left, right) or less_than(right, left)
        case "+" | "-" | "*" | "/" | "%":
            try:
                return _apply_numeric_operator(operator, left, right)
            except (OverflowError, ValueError) as exc:
                raise QueryRuntimeError(f"Arithmetic error in {operator}: {exc}") from exc
    raise QueryRuntimeError(f"Unsupported operator: {operator}")


def _require_number(operator: str, value: object) -> int | float:
    if value_kind(value) != ValueKind.NUMBER:
        raise TypeMismatchError(
            f"{operator} operator requires numeric operands, got {value_kind(value)}"
        )
    return cast(int | float, value)


def _guard_non_zero(value: int | float, message: str) -> None:
    """Raise runtime error when value is zero."""
    if value == 0:
        raise QueryRuntimeError(message)


def _apply_numeric_operator(operator: str, left: object, right: object) -> int | float:
    """Apply arithmetic to two numbers."""
    left_num = _require_number(operator, left)
    right_num = _require_number(operator, right)
    match operator:
        case "+":
            return left_num + right_num
        case "-":
            return left_num - right_num
        case "*":
            return left_num * right_num
        case "/":
            _guard_non_zero(right_num, "Division by zero")
            return left_num / right_num
        case "%":
            _guard_non_zero(right_num, "Modulo by zero")
            # Sign follows the dividend
            if isinstance(left_num, int) and isinstance(right_num, int):
                return _int_remainder(left_num, right_num)
            return math.fmod(left_num, right_num)
    raise QueryRuntimeError(f"Unsupported numeric operator: {operator}")


def _int_remainder(left: int, right: int) -> int:
    remainder = abs(left) % abs(right)
    return -remainder if left < 0 else remainder


def _apply_unary_operator(operator: str, operand: object) -> object:
    if operator == "NOT":
        return not is_truthy(operand)
    if operator == "-":
        return -_require_number(operator, operand)
    raise QueryRuntimeError(f"Unsupported unary operator: {operator}")
