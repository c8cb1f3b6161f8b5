"""Output format abstraction and format-specific renderers."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from notedql.color import colorize, dim, escape_text, header, null_value, task_state_style
from notedql.query_language import QueryResult, Row, TaskItem
from notedql.query_language.values import to_display_string, to_json_compatible


DEFAULT_OUTPUT_THEME = "github-dark"
NO_RESULTS = "No results"


class OutputFormat(StrEnum):
    """Supported output formats."""

    TABLE = "table"
    JSON = "json"


class QueryOutputFormatter(Protocol):
    """Formatter interface for the query command."""

    def prepare(self, result: QueryResult, color_enabled: bool) -> PreparedOutput:
        """Prepare a query result for rendering."""
        ...


@dataclass(frozen=True)
class OutputOperation:
    """One prepared output operation."""

    kind: str
    text: str | None = None
    renderable: object | None = None
    markup: bool = False


@dataclass(frozen=True)
class PreparedOutput:
    """Prepared output operations ready for console rendering."""

    operations: tuple[OutputOperation, ...]


class OutputFormatError(RuntimeError):
    """Raised when output formatting fails."""


def build_console(color_enabled: bool) -> Console:
    """Build the console used for all command output."""
    return Console(
        force_terminal=color_enabled,
        no_color=not color_enabled,
        highlight=False,
        soft_wrap=True,
    )


@contextmanager
def processing_status(console: Console, color_enabled: bool) -> Iterator[None]:
    """Show a spinner on the console while the vault is loaded and queried."""
    status = console.status("Processing...") if color_enabled else nullcontext()
    with status:
        yield


def _write_plain_output(console: Console, text: str) -> None:
    """Write plain output directly to console stream."""
    console.file.write(f"{text}\n")
    console.file.flush()


def print_prepared_output(console: Console, prepared_output: PreparedOutput) -> None:
    """Print already prepared output operations."""
    for operation in prepared_output.operations:
        if operation.kind == "plain_write":
            if operation.text is not None:
                _write_plain_output(console, operation.text)
            continue
        if operation.renderable is not None:
            console.print(operation.renderable)
            continue
        console.print(operation.text if operation.text is not None else "", markup=operation.markup)


def _no_results() -> PreparedOutput:
    return PreparedOutput(
        operations=(OutputOperation(kind="console_print", text=NO_RESULTS, markup=False),)
    )


def format_cell(value: object, color_enabled: bool) -> str:
    """Format one result value as markup-safe cell text."""
    if value is None:
        return null_value("-", color_enabled)
    if isinstance(value, list):
        text = ", ".join(to_display_string(item) for item in value)
    else:
        text = to_display_string(value)
    return escape_text(text, color_enabled)


def _row_values(row: Row, columns: list[str], color_enabled: bool) -> list[str]:
    return [format_cell(row.fields.get(column), color_enabled) for column in columns]


def _format_list_line(row: Row, columns: list[str], color_enabled: bool) -> str:
    """Render a LIST row as a bullet with its values separated by dashes."""
    values = _row_values(row, columns, color_enabled)
    return f"- {' - '.join(values)}" if values else f"- {escape_text(row.path, color_enabled)}"


def _format_task_line(task: TaskItem, color_enabled: bool) -> str:
    """Render a checklist item with its source location."""
    box = "[x]" if task.completed else "[ ]"
    state = colorize(box, task_state_style(task.completed, color_enabled), color_enabled)
    location = dim(f"({task.path}:{task.line})", color_enabled)
    return f"- {state} {escape_text(task.text, color_enabled)} {location}"


class TableQueryOutputFormatter:
    """Rich table, bullet list and checklist renderer for query results."""

    def prepare(self, result: QueryResult, color_enabled: bool) -> PreparedOutput:
        if result.result_type == "task":
            if not result.tasks:
                return _no_results()
            return PreparedOutput(
                operations=tuple(
                    OutputOperation(
                        kind="console_print",
                        text=_format_task_line(task, color_enabled),
                        markup=color_enabled,
                    )
                    for task in result.tasks
                )
            )

        if not result.rows:
            return _no_results()

        if result.result_type == "list":
            return PreparedOutput(
                operations=tuple(
                    OutputOperation(
                        kind="console_print",
                        text=_format_list_line(row, result.columns, color_enabled),
                        markup=color_enabled,
                    )
                    for row in result.rows
                )
            )

        # Table cells are always parsed as markup; the console drops styles without color.
        table = Table(show_header=True, header_style=None, show_lines=False)
        for column in result.columns:
            table.add_column(header(column, True))
        for row in result.rows:
            table.add_row(*_row_values(row, result.columns, True))
        return PreparedOutput(operations=(OutputOperation(kind="console_print", renderable=table),))


def _prepare_json_output(text: str, color_enabled: bool) -> PreparedOutput:
    """Prepare JSON text with syntax highlighting when color is enabled."""
    if color_enabled:
        return PreparedOutput(
            operations=(
                OutputOperation(
                    kind="console_print",
                    renderable=Syntax(
                        text,
                        "json",
                        theme=DEFAULT_OUTPUT_THEME,
                        line_numbers=False,
                        word_wrap=True,
                    ),
                ),
            )
        )
    return PreparedOutput(operations=(OutputOperation(kind="plain_write", text=text),))


class JsonQueryOutputFormatter:
    """JSON output formatter for query command."""

    def prepare(self, result: QueryResult, color_enabled: bool) -> PreparedOutput:
        try:
            text = json.dumps(to_json_compatible(result.to_dict()), ensure_ascii=True)
        except (TypeError, ValueError) as exc:
            raise OutputFormatError(f"Cannot serialize query result: {exc}") from exc
        return _prepare_json_output(text, color_enabled)


_TABLE_QUERY_FORMATTER = TableQueryOutputFormatter()
_JSON_QUERY_FORMATTER = JsonQueryOutputFormatter()


def get_query_formatter(output_format: str) -> QueryOutputFormatter:
    """Return query formatter for selected output format.

    Raises:
        OutputFormatError: If the output format is not supported
    """
    normalized_output = output_format.strip().lower()
    if normalized_output == OutputFormat.TABLE:
        return _TABLE_QUERY_FORMATTER
    if normalized_output == OutputFormat.JSON:
        return _JSON_QUERY_FORMATTER
    supported = ", ".join(str(item) for item in OutputFormat)
    raise OutputFormatError(
        f"Unsupported output format '{output_format}', expected one of: {supported}"
    )
