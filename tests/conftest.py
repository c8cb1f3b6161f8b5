"""Shared pytest fixtures."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from datetime import datetime
from pathlib import Path
from typing import TypeAlias

import pytest

from notedql.query_language import FileInfo, Row


FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"
VAULT_DIR = FIXTURES_DIR / "vault"

RowFactory: TypeAlias = Callable[..., Row]


@pytest.fixture(autouse=True)
def _reset_notedql_logger() -> Iterator[None]:
    """Undo CLI logging configuration so caplog keeps seeing records."""
    yield
    logger = logging.getLogger("notedql")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def vault_dir() -> Path:
    return VAULT_DIR


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 3, 15, 14, 30, 0)


@pytest.fixture
def make_row() -> RowFactory:
    """Build a row at a relative path with the given fields."""

    def factory(path: str, text: str | None = None, **fields: object) -> Row:
        return Row(FileInfo.from_path(path), fields, text)

    return factory
