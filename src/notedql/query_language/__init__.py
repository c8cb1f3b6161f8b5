"""Public API for query language parser/compiler/runtime."""

from notedql.query_language.aggregation import (
    AggregateFunction,
    AggregateType,
    AggregationEngine,
    GroupBySpec,
    GroupedRow,
    parse_aggregate_function,
)
from notedql.query_language.compiler import CompiledExpression, compile_expr, compile_expression
from notedql.query_language.errors import (
    AggregateWithoutGroupByError,
    QueryLanguageError,
    QueryLexError,
    QueryParseError,
    QueryRuntimeError,
    TypeMismatchError,
    UnknownFunctionError,
)
from notedql.query_language.executor import QueryExecutor, QueryResult, run_query
from notedql.query_language.functions import FunctionLibrary
from notedql.query_language.parser import parse_expression
from notedql.query_language.query import (
    FieldSpec,
    FromClause,
    FromSource,
    ParsedQuery,
    QueryType,
    SortClause,
    parse_query,
)
from notedql.query_language.rows import FileInfo, Row, TaskItem
from notedql.query_language.runtime import EvalContext, Evaluator
from notedql.query_language.tokens import Token, TokenKind, tokenize


__all__ = [
    "AggregateFunction",
    "AggregateType",
    "AggregateWithoutGroupByError",
    "AggregationEngine",
    "CompiledExpression",
    "EvalContext",
    "Evaluator",
    "FieldSpec",
    "FileInfo",
    "FromClause",
    "FromSource",
    "FunctionLibrary",
    "GroupBySpec",
    "GroupedRow",
    "ParsedQuery",
    "QueryExecutor",
    "QueryLanguageError",
    "QueryLexError",
    "QueryParseError",
    "QueryResult",
    "QueryRuntimeError",
    "QueryType",
    "Row",
    "SortClause",
    "TaskItem",
    "Token",
    "TokenKind",
    "TypeMismatchError",
    "UnknownFunctionError",
    "compile_expr",
    "compile_expression",
    "parse_aggregate_function",
    "parse_expression",
    "parse_query",
    "run_query",
    "tokenize",
]
