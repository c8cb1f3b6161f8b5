"""Tests for notedql.cli main entrypoint wiring."""

from __future__ import annotations

import sys
from types import SimpleNamespace

import pytest
import typer

from notedql import cli, config


def test_cli_main_builds_default_map(monkeypatch: pytest.MonkeyPatch) -> None:
    """main should load config defaults and pass default_map to Typer command."""
    recorded: dict[str, object] = {}

    class DummyCommand:
        def main(
            self, args: list[str], prog_name: str, standalone_mode: bool, default_map: object
        ) -> None:
            recorded["args"] = args
            recorded["prog_name"] = prog_name
            recorded["standalone_mode"] = standalone_mode
            recorded["default_map"] = default_map

    def fake_get_command(_app: object) -> DummyCommand:
        return DummyCommand()

    monkeypatch.setattr(
        config,
        "load_cli_config",
        lambda _argv: config.LoadedCliConfig(defaults={"max_results": 3, "out": "json"}),
    )
    monkeypatch.setattr(typer.main, "get_command", fake_get_command)
    monkeypatch.setattr(sys, "argv", ["notedql", "query", "--no-color", "LIST", "vault"])
    monkeypatch.setattr(config, "CONFIG_DEFAULTS", {})

    cli.main()

    assert recorded["args"] == ["query", "--no-color", "LIST", "vault"]
    assert recorded["prog_name"] == "notedql"
    assert recorded["standalone_mode"] is True
    assert recorded["default_map"] == {"query": {"max_results": 3, "out": "json"}}
    assert config.CONFIG_DEFAULTS == {"max_results": 3, "out": "json"}


def test_cli_main_without_defaults_passes_no_default_map(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """An empty config should not produce a default_map."""
    recorded: dict[str, object] = {}

    def fake_main(**kwargs: object) -> None:
        recorded.update(kwargs)

    monkeypatch.setattr(config, "load_cli_config", lambda _argv: config.LoadedCliConfig({}))
    monkeypatch.setattr(typer.main, "get_command", lambda _app: SimpleNamespace(main=fake_main))
    monkeypatch.setattr(sys, "argv", ["notedql", "query", "LIST"])
    monkeypatch.setattr(config, "CONFIG_DEFAULTS", {})

    cli.main()

    assert recorded["default_map"] is None


def test_cli_main_moves_verbose_to_global_default(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config verbose should become the global default, not a query option."""
    recorded: dict[str, object] = {}

    def fake_main(**kwargs: object) -> None:
        recorded.update(kwargs)

    monkeypatch.setattr(
        config,
        "load_cli_config",
        lambda _argv: config.LoadedCliConfig({"verbose": True, "max_results": 5}),
    )
    monkeypatch.setattr(typer.main, "get_command", lambda _app: SimpleNamespace(main=fake_main))
    monkeypatch.setattr(sys, "argv", ["notedql", "query", "LIST"])
    monkeypatch.setattr(config, "CONFIG_DEFAULTS", {})
    monkeypatch.setitem(cli.DEFAULT_VERBOSITY, "value", 0)

    cli.main()

    assert cli.DEFAULT_VERBOSITY["value"] == 1
    assert recorded["default_map"] == {"query": {"max_results": 5}}
    assert config.CONFIG_DEFAULTS == {"max_results": 5}
