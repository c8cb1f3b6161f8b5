#!/usr/bin/env python
"""CLI interface for notedql - declarative queries over markdown notes."""

from __future__ import annotations

import sys

import typer

from notedql import config, logging_config
from notedql.commands import query


app = typer.Typer(
    help="Run TABLE, LIST and TASK queries over a vault of markdown notes.",
    no_args_is_help=True,
)


DEFAULT_VERBOSITY: dict[str, int] = {"value": 0}


def _resolve_verbosity(verbose: int) -> int:
    if verbose == 0:
        return DEFAULT_VERBOSITY["value"]
    return verbose


@app.callback()
def main_callback(
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Log progress; repeat (-vv) to also log per-row evaluation failures",
    ),
) -> None:
    """Global CLI options."""
    verbosity = _resolve_verbosity(verbose)
    if verbosity == 0:
        return
    logging_config.configure_logging(verbosity)


query.register(app)


def main() -> None:
    """Main CLI entry point."""
    loaded_config = config.load_cli_config(sys.argv)
    defaults = dict(loaded_config.defaults)
    DEFAULT_VERBOSITY["value"] = int(bool(defaults.pop("verbose", False)))
    config.CONFIG_DEFAULTS.clear()
    config.CONFIG_DEFAULTS.update(defaults)

    command = typer.main.get_command(app)
    default_map = config.build_default_map(defaults) if defaults else None
    command.main(
        args=sys.argv[1:],
        prog_name="notedql",
        standalone_mode=True,
        default_map=default_map,
    )


if __name__ == "__main__":
    main()
