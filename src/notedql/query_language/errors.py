"""Errors for query language parsing and execution."""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from notedql.query_language.tokens import Token


class QueryLanguageError(Exception):
    """Base exception for query language failures."""


class QueryParseError(QueryLanguageError):
    """Raised when query or expression text cannot be parsed."""

    def __init__(
        self,
        message: str,
        token: Token | None = None,
        expected: str | None = None,
    ) -> None:
        super().__init__(message)
        self.token = token
        self.expected = expected


class QueryLexError(QueryParseError):
    """Raised when expression text cannot be tokenized."""


class QueryRuntimeError(QueryLanguageError):
    """Raised when expression evaluation fails at runtime."""


class UnknownFunctionError(QueryRuntimeError):
    """Raised when an expression calls a function that does not exist."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown function: {name}")
        self.name = name


class TypeMismatchError(QueryRuntimeError):
    """Raised when an operator receives operands of unsupported types."""


class AggregateWithoutGroupByError(QueryLanguageError):
    """Raised when aggregate functions are used without a GROUP BY clause."""
