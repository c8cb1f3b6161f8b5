"""Row model shared by the query clause parser, aggregation and executor."""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import cast

from notedql.query_language.runtime import EvalContext


_TASK_PATTERN = re.compile(r"^\s*[-*+]\s+\[([ xX])\]\s*(.*)$")
_TASK_TAG_PATTERN = re.compile(r"(?<![\w#])#([\w/-]+)")


@dataclass(frozen=True, slots=True)
class FileInfo:
    """File metadata exposed to queries as `file.*`."""

    path: str
    name: str
    folder: str = ""
    ext: str = "md"
    ctime: datetime | None = None
    mtime: datetime | None = None
    size: int | None = None
    outlinks: tuple[str, ...] | str = ()

    @classmethod
    def from_path(
        cls,
        path: str,
        name: str | None = None,
        *,
        ctime: datetime | None = None,
        mtime: datetime | None = None,
        size: int | None = None,
        outlinks: tuple[str, ...] = (),
    ) -> FileInfo:
        """Derive name, folder and extension from a POSIX-style relative path."""
        folder, _, filename = path.rpartition("/")
        stem, dot, ext = filename.rpartition(".")
        if not dot:
            stem, ext = filename, ""
        return cls(path, name or stem, folder, ext, ctime, mtime, size, outlinks)

    def as_dict(self) -> dict[str, object]:
        """Return query-visible mapping of file attributes."""
        outlinks = list(self.outlinks) if isinstance(self.outlinks, tuple) else self.outlinks
        return {
            "path": self.path,
            "name": self.name,
            "folder": self.folder,
            "ext": self.ext,
            "ctime": self.ctime,
            "mtime": self.mtime,
            "size": self.size,
            "outlinks": outlinks,
        }


@dataclass(frozen=True, slots=True)
class Row:
    """One corpus entry: file metadata, free-form fields and optional body text."""

    file: FileInfo
    fields: Mapping[str, object] = field(default_factory=dict)
    text: str | None = None

    @property
    def path(self) -> str:
        return self.file.path

    def context(self) -> EvalContext:
        """Build evaluation context for this row."""
        return EvalContext(self.fields, self.file.as_dict())

    def as_dict(self) -> dict[str, object]:
        """Return row as a plain value with `file` and `fields` keys."""
        return {"file": self.file.as_dict(), "fields": dict(self.fields)}

    def lookup(self, path: str) -> object:
        """Resolve a dotted path through fields, then file metadata."""
        first, *rest = path.split(".")
        if first in self.fields:
            value: object = self.fields[first]
        elif first == "file":
            value = self.file.as_dict()
        else:
            return None
        for part in rest:
            value = _child(value, part)
            if value is None:
                return None
        return value

    def with_value(self, path: str, value: object) -> Row:
        """Return copy of the row with the value at a dotted path replaced."""
        first, *rest = path.split(".")
        if first in self.fields or not rest:
            updated = _replace_nested(self.fields.get(first), rest, value)
            if updated is _UNCHANGED:
                return self
            return dataclasses.replace(self, fields={**self.fields, first: updated})
        if first == "file" and len(rest) == 1 and rest[0] in FileInfo.__dataclass_fields__:
            return dataclasses.replace(
                self,
                file=dataclasses.replace(self.file, **{rest[0]: value}),
            )
        return self


_UNCHANGED = object()


def _child(value: object, part: str) -> object:
    if isinstance(value, Mapping):
        return cast(Mapping[str, object], value).get(part)
    if isinstance(value, list) and part.isdigit():
        items = cast(list[object], value)
        index = int(part)
        return items[index] if index < len(items) else None
    return None


def _replace_nested(current: object, parts: list[str], value: object) -> object:
    """Rebuild the dictionaries along parts with value at the end."""
    if not parts:
        return value
    if not isinstance(current, Mapping):
        return _UNCHANGED
    mapping = cast(Mapping[str, object], current)
    head, *tail = parts
    updated = _replace_nested(mapping.get(head), tail, value)
    if updated is _UNCHANGED:
        return _UNCHANGED
    return {**mapping, head: updated}


@dataclass(frozen=True, slots=True)
class TaskItem:
    """One checklist item extracted from a row's text."""

    path: str
    line: int
    text: str
    completed: bool
    tags: tuple[str, ...] = ()

    def context(self, file: FileInfo) -> EvalContext:
        """Build evaluation context exposing the task as fields."""
        return EvalContext(
            {
                "text": self.text,
                "completed": self.completed,
                "tags": list(self.tags),
                "line": self.line,
                "path": self.path,
            },
            file.as_dict(),
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "line": self.line,
            "text": self.text,
            "completed": self.completed,
            "tags": list(self.tags),
        }


def extract_tasks(row: Row) -> list[TaskItem]:
    """Extract `- [ ]` and `- [x]` checklist items, numbering lines from 1."""
    if not row.text:
        return []
    tasks: list[TaskItem] = []
    for line_number, line in enumerate(row.text.splitlines(), start=1):
        match = _TASK_PATTERN.match(line)
        if match is None:
            continue
        text = match.group(2).strip()
        tasks.append(
            TaskItem(
                path=row.path,
                line=line_number,
                text=text,
                completed=match.group(1) in {"x", "X"},
                tags=tuple(_TASK_TAG_PATTERN.findall(text)),
            )
        )
    return tasks
