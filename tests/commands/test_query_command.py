"""Tests for query command behavior."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable

import click
import pytest
import typer

from notedql.commands.query import QueryArgs, cap_results, run_query
from notedql.output_format import OutputFormat
from notedql.query_language import Row
from notedql.query_language import run_query as execute_query


VAULT_DIR = os.path.join(os.path.dirname(__file__), "..", "fixtures", "vault")


def _make_args(query: str, **overrides: object) -> QueryArgs:
    args = QueryArgs(
        query=query,
        paths=[VAULT_DIR],
        config=".notedql.json",
        color_flag=False,
        max_results=0,
        out=OutputFormat.TABLE,
    )
    for key, value in overrides.items():
        setattr(args, key, value)
    return args


def test_run_query_prints_list_results(capsys: pytest.CaptureFixture[str]) -> None:
    """LIST results should render one bullet per note."""
    run_query(_make_args('LIST file.name FROM "proj" SORT file.name'))

    captured = capsys.readouterr().out

    assert captured.splitlines() == ["- Alpha", "- beta", "- delta", "- gamma"]


def test_run_query_json_output(capsys: pytest.CaptureFixture[str]) -> None:
    """JSON output should be parseable and include file metadata."""
    run_query(_make_args("TABLE due FROM #project WHERE due SORT due ASC LIMIT 1", out="json"))

    payload = json.loads(capsys.readouterr().out)

    assert payload["columns"] == ["due"]
    assert payload["rows"][0]["fields"] == {"due": "2023-12-01T00:00:00"}
    assert payload["rows"][0]["file"]["path"] == "proj/beta.md"
    assert payload["rows"][0]["file"]["folder"] == "proj"


def test_run_query_table_output(capsys: pytest.CaptureFixture[str]) -> None:
    """TABLE results should render a table with headers and values."""
    run_query(_make_args('TABLE status, priority FROM "proj" WHERE priority > 2'))

    captured = capsys.readouterr().out

    assert "status" in captured
    assert "priority" in captured
    assert "blocked" in captured
    assert "active" in captured
    assert "done" not in captured


def test_run_query_empty_result(capsys: pytest.CaptureFixture[str]) -> None:
    """Queries without matches should print a placeholder."""
    run_query(_make_args('LIST WHERE status = "archived"'))

    assert capsys.readouterr().out.strip() == "No results"


def test_run_query_max_results_caps_output(capsys: pytest.CaptureFixture[str]) -> None:
    """--max-results should limit the printed rows."""
    run_query(_make_args("TASK", max_results=2))

    assert len(capsys.readouterr().out.splitlines()) == 2


def test_run_query_skips_broken_notes(
    capsys: pytest.CaptureFixture[str], caplog: pytest.LogCaptureFixture
) -> None:
    """Notes with invalid frontmatter should be skipped with a warning."""
    with caplog.at_level(logging.WARNING, logger="notedql"):
        run_query(_make_args('LIST FROM "notes"'))

    assert capsys.readouterr().out.splitlines() == ["- daily"]
    assert any("broken.md" in record.getMessage() for record in caplog.records)


def test_run_query_parse_error_is_usage_error() -> None:
    """Query syntax errors should surface as usage errors."""
    with pytest.raises(click.UsageError, match="Query must start with TABLE, LIST or TASK"):
        run_query(_make_args("SELECT status"))


def test_run_query_aggregate_without_group_by_is_usage_error() -> None:
    """Aggregates need a GROUP BY clause."""
    with pytest.raises(click.UsageError, match="Aggregate functions require a GROUP BY clause"):
        run_query(_make_args("TABLE COUNT()"))


def test_run_query_invalid_output_format() -> None:
    """Unsupported output formats should raise a usage error."""
    with pytest.raises(click.UsageError, match="Unsupported output format"):
        run_query(_make_args("LIST", out="yaml"))


def test_run_query_negative_max_results() -> None:
    """Negative caps are rejected."""
    with pytest.raises(typer.BadParameter, match="--max-results must be non-negative"):
        run_query(_make_args("LIST", max_results=-1))


def test_run_query_missing_path() -> None:
    """Missing paths should raise bad parameter errors."""
    with pytest.raises(typer.BadParameter, match="not found"):
        run_query(_make_args("LIST", paths=[os.path.join(VAULT_DIR, "missing")]))


def test_cap_results_limits_rows_and_keeps_query(make_row: Callable[..., Row]) -> None:
    """cap_results should truncate rows and leave the rest untouched."""
    rows = [make_row(f"n{index}.md", value=index) for index in range(5)]
    result = execute_query("TABLE value", rows)

    capped = cap_results(result, 2)

    assert [row.fields["value"] for row in capped.rows] == [0, 1]
    assert capped.columns == result.columns
    assert capped.query == result.query
    assert cap_results(result, 0) is result
