"""Markdown vault row provider."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path
from typing import cast

import typer
import yaml

from notedql.query_language.rows import FileInfo, Row
from notedql.query_language.values import normalize_datetime


logger = logging.getLogger("notedql")

_FRONTMATTER_DELIMITER = "---"
_WIKILINK_PATTERN = re.compile(r"\[\[([^\]|#]+)(?:#[^\]|]*)?(?:\|[^\]]*)?\]\]")


def split_frontmatter(contents: str) -> tuple[str | None, str]:
    """Split a leading `---` delimited block from the note body.

    Returns:
        Tuple of (frontmatter text or None, body text)
    """
    lines = contents.splitlines(keepends=True)
    if not lines or lines[0].strip() != _FRONTMATTER_DELIMITER:
        return None, contents
    for index, line in enumerate(lines[1:], start=1):
        if line.strip() == _FRONTMATTER_DELIMITER:
            return "".join(lines[1:index]), "".join(lines[index + 1 :])
    return None, contents


def _normalize_value(value: object) -> object:
    """Convert YAML scalars and collections into query runtime values."""
    if isinstance(value, datetime | date):
        return normalize_datetime(value)
    if isinstance(value, list | tuple | set):
        return [_normalize_value(item) for item in cast(Iterable[object], value)]
    if isinstance(value, dict):
        return {
            str(key): _normalize_value(item) for key, item in cast(dict[object, object], value).items()
        }
    if value is None or isinstance(value, bool | int | float | str):
        return value
    return str(value)


def parse_frontmatter(text: str | None, filename: str) -> dict[str, object]:
    """Parse frontmatter YAML into a fields map.

    Non-mapping documents yield empty fields.

    Raises:
        yaml.YAMLError: If the frontmatter is not valid YAML
    """
    if text is None or not text.strip():
        return {}
    data = yaml.safe_load(text)
    if not isinstance(data, dict):
        logger.info("Ignoring non-mapping frontmatter in %s", filename)
        return {}
    return cast(dict[str, object], _normalize_value(data))


def extract_outlinks(body: str) -> tuple[str, ...]:
    """Return wikilink targets in order of first appearance."""
    targets = (match.group(1).strip() for match in _WIKILINK_PATTERN.finditer(body))
    return tuple(dict.fromkeys(target for target in targets if target))


def load_row(file_path: Path, root: Path) -> Row:
    """Read one markdown note into a row.

    Raises:
        OSError: If the file cannot be read
        UnicodeDecodeError: If the file is not UTF-8
        yaml.YAMLError: If the frontmatter is not valid YAML
    """
    with open(file_path, encoding="utf-8") as f:
        logger.info("Processing %s...", file_path)
        contents = f.read()

    frontmatter, body = split_frontmatter(contents)
    fields = parse_frontmatter(frontmatter, str(file_path))
    stat = file_path.stat()
    relative = file_path.relative_to(root) if file_path.is_relative_to(root) else file_path
    title = fields.get("title")

    info = FileInfo.from_path(
        relative.as_posix(),
        title if isinstance(title, str) and title.strip() else None,
        ctime=datetime.fromtimestamp(stat.st_ctime),
        mtime=datetime.fromtimestamp(stat.st_mtime),
        size=stat.st_size,
        outlinks=extract_outlinks(body),
    )
    return Row(info, fields, body)


def resolve_input_paths(inputs: list[str] | None) -> list[tuple[Path, Path]]:
    """Resolve CLI inputs into (file, vault root) pairs.

    Args:
        inputs: List of CLI path arguments (files and directories)

    Returns:
        Markdown files paired with the root their row paths are relative to

    Raises:
        typer.BadParameter: If a path does not exist
    """
    resolved: list[tuple[Path, Path]] = []
    for raw_path in inputs or ["."]:
        path = Path(raw_path)
        if not path.exists():
            raise typer.BadParameter(f"Path '{raw_path}' not found")

        if path.is_dir():
            resolved.extend((file_path, path) for file_path in sorted(path.rglob("*.md")))
            continue

        if path.is_file():
            resolved.append((path, path.parent))
            continue

        raise typer.BadParameter(f"Path '{raw_path}' is not a file or directory")
    return resolved


def load_rows(inputs: list[str] | None) -> list[Row]:
    """Load every markdown note under the given paths.

    Unreadable notes and notes with invalid frontmatter are logged and skipped.

    Raises:
        typer.BadParameter: If a path does not exist
    """
    rows: list[Row] = []
    for file_path, root in resolve_input_paths(inputs):
        try:
            rows.append(load_row(file_path, root))
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
            logger.warning("Skipping %s: %s", file_path, exc)
    logger.info("Loaded %d row(s)", len(rows))
    return rows
