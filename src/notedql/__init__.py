"""notedql - Declarative TABLE / LIST / TASK queries over markdown notes."""

from notedql.cli import main
from notedql.query_language import (
    FileInfo,
    ParsedQuery,
    QueryExecutor,
    QueryResult,
    Row,
    TaskItem,
    parse_query,
    run_query,
)
from notedql.vault import load_rows


__version__ = "0.1.0"

__all__ = [
    "FileInfo",
    "ParsedQuery",
    "QueryExecutor",
    "QueryResult",
    "Row",
    "TaskItem",
    "__version__",
    "load_rows",
    "main",
    "parse_query",
    "run_query",
]
