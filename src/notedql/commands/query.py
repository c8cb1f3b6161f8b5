"""Query command for TABLE / LIST / TASK queries over a markdown vault."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

import click
import typer

from notedql import config as config_module
from notedql.color import should_use_color
from notedql.output_format import (
    OutputFormat,
    OutputFormatError,
    build_console,
    get_query_formatter,
    print_prepared_output,
    processing_status,
)
from notedql.query_language import QueryExecutor, QueryLanguageError, QueryResult, parse_query
from notedql.vault import load_rows


@dataclass
class QueryArgs:
    """Arguments for the query command."""

    query: str
    paths: list[str] | None
    config: str
    color_flag: bool | None
    max_results: int
    out: str


def cap_results(result: QueryResult, max_results: int) -> QueryResult:
    """Cap displayed rows or tasks; zero means unlimited."""
    if max_results <= 0:
        return result
    return dataclasses.replace(
        result,
        rows=result.rows[:max_results],
        tasks=result.tasks[:max_results],
    )


def run_query(args: QueryArgs) -> None:
    """Run the query command."""
    color_enabled = should_use_color(args.color_flag)
    console = build_console(color_enabled)
    if args.max_results < 0:
        raise typer.BadParameter("--max-results must be non-negative")
    try:
        formatter = get_query_formatter(args.out)
    except OutputFormatError as exc:
        raise click.UsageError(str(exc)) from exc

    try:
        parsed = parse_query(args.query)
    except QueryLanguageError as exc:
        raise click.UsageError(str(exc)) from exc

    with processing_status(console, color_enabled):
        rows = load_rows(args.paths)
        try:
            result = QueryExecutor().execute(parsed, rows)
        except QueryLanguageError as exc:
            raise click.UsageError(str(exc)) from exc

        try:
            prepared_output = formatter.prepare(
                cap_results(result, args.max_results), color_enabled
            )
        except (OutputFormatError, QueryLanguageError) as exc:
            raise click.UsageError(str(exc)) from exc

    print_prepared_output(console, prepared_output)


def register(app: typer.Typer) -> None:
    """Register the query command."""

    @app.command("query")
    def query_command(
        query: str = typer.Argument(
            ..., metavar="QUERY", help="TABLE, LIST or TASK query to run"
        ),
        paths: list[str] | None = typer.Argument(  # noqa: B008
            None, metavar="PATH", help="Markdown notes or vault directories to query"
        ),
        config: str = typer.Option(
            config_module.DEFAULT_CONFIG_NAME,
            "--config",
            metavar="FILE",
            help="Config file name to load from current directory",
        ),
        color_flag: bool | None = typer.Option(
            None,
            "--color/--no-color",
            help="Force colored output",
        ),
        max_results: int = typer.Option(
            0,
            "--max-results",
            "-n",
            metavar="N",
            help="Maximum number of results to display (0 for all)",
        ),
        out: str = typer.Option(
            OutputFormat.TABLE,
            "--out",
            help="Output format: table or json",
        ),
    ) -> None:
        """Query markdown notes with TABLE, LIST or TASK statements."""
        args = QueryArgs(
            query=query,
            paths=paths,
            config=config,
            color_flag=color_flag,
            max_results=max_results,
            out=out,
        )
        config_module.log_applied_config_defaults("query")
        config_module.log_command_arguments(args, "query")
        run_query(args)
