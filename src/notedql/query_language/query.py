"""Clause-level parser for TABLE / LIST / TASK queries.

A query starts with its statement keyword, optionally followed by a field list, and then
any of the clauses below, either on one line or spread over several lines::

    TABLE status, length(tags) AS "Tag count"
    FROM #project OR "work/notes"
    WHERE status != "done"
    FLATTEN tags
    GROUP BY status
    SORT file.name DESC
    LIMIT 10

Clause keywords are matched case-insensitively as whole words outside quoted strings.
A line that does not start with a clause keyword continues the previous clause.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import cast

from notedql.query_language.errors import QueryParseError
from notedql.query_language.rows import Row


class QueryType(StrEnum):
    """Statement types."""

    TABLE = "TABLE"
    LIST = "LIST"
    TASK = "TASK"


class SortDirection(StrEnum):
    ASC = "ASC"
    DESC = "DESC"


class SourceKind(StrEnum):
    """FROM source kinds."""

    TAG = "tag"
    FOLDER = "folder"
    FILE = "file"


class FromOperator(StrEnum):
    AND = "AND"
    OR = "OR"


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """One projected column."""

    expression: str
    alias: str | None = None

    @property
    def name(self) -> str:
        """Return output column name."""
        return self.alias if self.alias is not None else self.expression


@dataclass(frozen=True, slots=True)
class FromSource:
    """One tag, folder or file source, optionally negated."""

    kind: SourceKind
    value: str
    negated: bool = False

    def describe(self) -> str:
        prefix = "-" if self.negated else ""
        if self.kind == SourceKind.TAG:
            return f"{prefix}#{self.value}"
        return f'{prefix}"{self.value}"'


@dataclass(frozen=True, slots=True)
class FromClause:
    """Sources combined uniformly by AND or OR."""

    sources: tuple[FromSource, ...]
    operator: FromOperator = FromOperator.AND

    def describe(self) -> str:
        return f" {self.operator} ".join(source.describe() for source in self.sources)


@dataclass(frozen=True, slots=True)
class SortClause:
    field: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True, slots=True)
class ParsedQuery:
    """Structured form of one query statement."""

    type: QueryType
    fields: tuple[FieldSpec, ...] = ()
    from_clause: FromClause | None = None
    where: str | None = None
    sort: SortClause | None = None
    group_by: tuple[str, ...] = ()
    flatten: str | None = None
    limit: int | None = None

    def describe(self) -> dict[str, object]:
        """Return JSON-friendly echo of the parsed clauses."""
        return {
            "type": str(self.type),
            "fields": [spec.name for spec in self.fields],
            "from": self.from_clause.describe() if self.from_clause is not None else None,
            "where": self.where,
            "sort": f"{self.sort.field} {self.sort.direction}" if self.sort is not None else None,
            "group_by": list(self.group_by),
            "flatten": self.flatten,
            "limit": self.limit,
        }


DEFAULT_FIELDS = (FieldSpec("file.name"),)

_STATEMENT_PATTERN = re.compile(r"^\s*([A-Za-z]+)(?=\s|$)")
_CLAUSE_PATTERN = re.compile(
    r"(?<![\w.#\-])(FROM|WHERE|SORT|GROUP\s+BY|FLATTEN|LIMIT)(?=\s|$)",
    re.IGNORECASE,
)
_ALIAS_PATTERN = re.compile(r"\s+AS\s+", re.IGNORECASE)
_FROM_OPERATOR_PATTERN = re.compile(r"\s+(AND|OR)\s+", re.IGNORECASE)
_SORT_PATTERN = re.compile(r"(.+?)(?:\s+(ASC|DESC))?", re.IGNORECASE | re.DOTALL)
_LIMIT_PATTERN = re.compile(r"[+-]?\d+")


def mask_quoted(text: str) -> str:
    """Replace quoted string contents with placeholders, keeping offsets intact."""
    chars = list(text)
    quote: str | None = None
    escaped = False
    for index, char in enumerate(text):
        if quote is None:
            if char in {'"', "'"}:
                quote = char
            continue
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == quote:
            quote = None
            continue
        chars[index] = "_"
    return "".join(chars)


def _nesting_depths(masked: str) -> list[int]:
    """Return bracket nesting depth before each character."""
    depths: list[int] = []
    depth = 0
    for char in masked:
        if char in ")]":
            depth = max(depth - 1, 0)
        depths.append(depth)
        if char in "([":
            depth += 1
    return depths


def _top_level_matches(pattern: re.Pattern[str], text: str) -> list[re.Match[str]]:
    """Find pattern matches outside quotes and brackets."""
    masked = mask_quoted(text)
    depths = _nesting_depths(masked)
    return [match for match in pattern.finditer(masked) if depths[match.start()] == 0]


def split_field_list(text: str) -> list[str]:
    """Split a field list on top-level commas."""
    masked = mask_quoted(text)
    depths = _nesting_depths(masked)
    parts: list[str] = []
    start = 0
    for index, char in enumerate(masked):
        if char == "," and depths[index] == 0:
            parts.append(text[start:index])
            start = index + 1
    parts.append(text[start:])
    return [part.strip() for part in parts if part.strip()]


def _strip_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in {'"', "'"}:
        return text[1:-1]
    return text


def parse_field_spec(text: str) -> FieldSpec:
    """Parse `expression [AS "alias"]`."""
    trimmed = text.strip()
    matches = _top_level_matches(_ALIAS_PATTERN, trimmed)
    if not matches:
        return FieldSpec(trimmed)
    last = matches[-1]
    expression = trimmed[: last.start()].strip()
    alias = _strip_quotes(trimmed[last.end() :].strip())
    if not expression or not alias:
        raise QueryParseError(f"Invalid field alias: {trimmed}")
    return FieldSpec(expression, alias)


def parse_field_list(text: str) -> tuple[FieldSpec, ...]:
    return tuple(parse_field_spec(part) for part in split_field_list(text))


def parse_from_source(text: str) -> FromSource:
    """Parse `#tag`, `"folder"`, bare folder or `*.md` file source."""
    value = text.strip()
    negated = value.startswith("-")
    if negated:
        value = value[1:].strip()
    if not value:
        raise QueryParseError(f"Empty FROM source: {text!r}")
    if value.startswith("#"):
        return FromSource(SourceKind.TAG, value[1:], negated)
    value = _strip_quotes(value)
    if value.lower().endswith(".md"):
        return FromSource(SourceKind.FILE, value, negated)
    return FromSource(SourceKind.FOLDER, value, negated)


def parse_from_clause(text: str) -> FromClause:
    """Parse sources joined uniformly by AND or OR."""
    separators = _top_level_matches(_FROM_OPERATOR_PATTERN, text)
    operators = {match.group(1).upper() for match in separators}
    if len(operators) > 1:
        raise QueryParseError(f"Mixing AND and OR in FROM is not supported: {text}")

    parts: list[str] = []
    start = 0
    for match in separators:
        parts.append(text[start : match.start()])
        start = match.end()
    parts.append(text[start:])

    operator = FromOperator(operators.pop()) if operators else FromOperator.AND
    return FromClause(tuple(parse_from_source(part) for part in parts), operator)


def parse_sort_clause(text: str) -> SortClause:
    match = _SORT_PATTERN.fullmatch(text.strip())
    if match is None:
        raise QueryParseError("SORT clause is empty")
    direction = (match.group(2) or "ASC").upper()
    return SortClause(match.group(1).strip(), SortDirection(direction))


def parse_limit(text: str) -> int | None:
    """Parse LIMIT value; non-positive values mean unlimited."""
    stripped = text.strip()
    if not _LIMIT_PATTERN.fullmatch(stripped):
        raise QueryParseError(f"LIMIT must be an integer, got {stripped!r}")
    value = int(stripped)
    return value if value > 0 else None


def _split_clauses(body: str) -> dict[str, str]:
    """Slice body text into clause keyword -> clause text."""
    matches = _top_level_matches(_CLAUSE_PATTERN, body)
    clauses: dict[str, str] = {"": body[: matches[0].start()] if matches else body}
    for index, match in enumerate(matches):
        keyword = " ".join(match.group(1).upper().split())
        if keyword in clauses:
            raise QueryParseError(f"Duplicate {keyword} clause")
        end = matches[index + 1].start() if index + 1 < len(matches) else len(body)
        content = body[match.end() : end].strip()
        if not content:
            raise QueryParseError(f"{keyword} clause is empty")
        clauses[keyword] = content
    return clauses


def parse_query(text: str) -> ParsedQuery:
    """Parse full query text into a `ParsedQuery`.

    Raises:
        QueryParseError: If the query is empty, has an unknown statement type or a
            malformed clause.
    """
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    if not lines:
        raise QueryParseError("Empty query")
    source = "\n".join(lines)

    statement = _STATEMENT_PATTERN.match(source)
    keyword = statement.group(1).upper() if statement is not None else source.split()[0]
    if statement is None or keyword not in QueryType.__members__:
        raise QueryParseError(f"Query must start with TABLE, LIST or TASK, got {keyword!r}")
    query_type = QueryType(keyword)

    clauses = _split_clauses(source[statement.end() :])
    header = clauses[""].strip()

    if query_type == QueryType.TASK:
        fields: tuple[FieldSpec, ...] = ()
    else:
        fields = parse_field_list(header) or DEFAULT_FIELDS

    return ParsedQuery(
        type=query_type,
        fields=fields,
        from_clause=parse_from_clause(clauses["FROM"]) if "FROM" in clauses else None,
        where=clauses.get("WHERE"),
        sort=parse_sort_clause(clauses["SORT"]) if "SORT" in clauses else None,
        group_by=tuple(split_field_list(clauses.get("GROUP BY", ""))),
        flatten=clauses.get("FLATTEN"),
        limit=parse_limit(clauses["LIMIT"]) if "LIMIT" in clauses else None,
    )


def _row_tags(fields: Mapping[str, object]) -> list[str]:
    """Return row tags normalised without a leading `#`."""
    raw = fields.get("tags")
    if raw is None:
        return []
    values = cast(Iterable[object], raw) if isinstance(raw, list | tuple) else [raw]
    return [str(tag).removeprefix("#") for tag in values if tag is not None]


def _matches_source(path: str, fields: Mapping[str, object], source: FromSource) -> bool:
    match source.kind:
        case SourceKind.TAG:
            matched = any(
                tag == source.value or tag.startswith(f"{source.value}/")
                for tag in _row_tags(fields)
            )
        case SourceKind.FOLDER:
            matched = path.startswith(source.value)
        case SourceKind.FILE:
            matched = path == source.value or path.endswith(f"/{source.value}")
    return not matched if source.negated else matched


def matches_from_clause(path: str, fields: Mapping[str, object], from_clause: FromClause) -> bool:
    """Return whether a row at path with fields satisfies the FROM predicate."""
    results = (_matches_source(path, fields, source) for source in from_clause.sources)
    if from_clause.operator == FromOperator.OR:
        return any(results)
    return all(results)


def apply_flatten(rows: Iterable[Row], field_path: str) -> list[Row]:
    """Explode rows whose field is a non-empty array into one row per element."""
    flattened: list[Row] = []
    for row in rows:
        value = row.lookup(field_path)
        if isinstance(value, list) and value:
            flattened.extend(row.with_value(field_path, item) for item in cast(list[object], value))
        else:
            flattened.append(row)
    return flattened
