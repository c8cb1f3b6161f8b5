"""GROUP BY bucketing and aggregate functions."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import cast

from notedql.query_language.rows import Row
from notedql.query_language.values import compare_values, hashable_key, is_number


class AggregateType(StrEnum):
    """Supported aggregate functions."""

    COUNT = "COUNT"
    SUM = "SUM"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"
    FIRST = "FIRST"
    LAST = "LAST"
    LIST = "LIST"


_AGGREGATE_PATTERN = re.compile(
    r"^(COUNT|SUM|AVG|MIN|MAX|FIRST|LAST|LIST)\s*\(\s*([^)]*?)\s*\)(?:\s+AS\s+(\w+))?$",
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class AggregateFunction:
    """One aggregate column."""

    type: AggregateType
    field: str | None = None
    alias: str | None = None

    @property
    def name(self) -> str:
        """Return the column name, falling back to the default alias."""
        return self.alias if self.alias else default_alias(self)


@dataclass(frozen=True, slots=True)
class GroupBySpec:
    fields: tuple[str, ...]
    aggregates: tuple[AggregateFunction, ...] = ()


@dataclass(slots=True)
class GroupedRow:
    """One bucket of rows sharing the same group key."""

    group_key: dict[str, object]
    rows: list[Row] = field(default_factory=list)
    aggregates: dict[str, object] = field(default_factory=dict)


def default_alias(aggregate: AggregateFunction) -> str:
    """Return `count`, `count_<field>` or `<type>_<field-or-value>` lower-cased."""
    if aggregate.type == AggregateType.COUNT:
        name = f"count_{aggregate.field}" if aggregate.field else "count"
    else:
        name = f"{aggregate.type}_{aggregate.field or 'value'}"
    return name.lower()


def parse_aggregate_function(text: str) -> AggregateFunction | None:
    """Parse `TYPE(field) [AS alias]`, returning None for non-aggregate text."""
    match = _AGGREGATE_PATTERN.match(text.strip())
    if match is None:
        return None
    return AggregateFunction(
        AggregateType(match.group(1).upper()),
        match.group(2) or None,
        match.group(3),
    )


def _field_values(rows: Iterable[Row], field_path: str) -> list[object]:
    return [row.lookup(field_path) for row in rows]


def _numbers(values: Iterable[object]) -> list[int | float]:
    return [cast(int | float, value) for value in values if is_number(value)]


def _extreme(values: list[object], better: Callable[[int], bool]) -> object:
    """Pick the best non-null value, keeping the first among equals."""
    present = [value for value in values if value is not None]
    if not present:
        return None
    best = present[0]
    for value in present[1:]:
        if better(compare_values(value, best)):
            best = value
    return best


class AggregationEngine:
    """Bucket rows by key and compute aggregates per bucket."""

    def group_by(self, rows: Iterable[Row], spec: GroupBySpec) -> list[GroupedRow]:
        """Group rows in first-seen key order and compute the requested aggregates."""
        groups: dict[object, GroupedRow] = {}
        for row in rows:
            key = {field_path: row.lookup(field_path) for field_path in spec.fields}
            bucket_key = tuple(hashable_key(value) for value in key.values())
            group = groups.get(bucket_key)
            if group is None:
                group = GroupedRow(key)
                groups[bucket_key] = group
            group.rows.append(row)

        for group in groups.values():
            for aggregate in spec.aggregates:
                group.aggregates[aggregate.name] = self.compute(aggregate, group.rows)
        return list(groups.values())

    def compute(self, aggregate: AggregateFunction, rows: list[Row]) -> object:
        """Compute one aggregate over bucket rows in their original order."""
        match aggregate.type:
            case AggregateType.COUNT:
                return len(rows)
            case AggregateType.FIRST | AggregateType.LAST:
                if not rows:
                    return None
                row = rows[0] if aggregate.type == AggregateType.FIRST else rows[-1]
                return row.lookup(aggregate.field) if aggregate.field else row.as_dict()
            case AggregateType.LIST:
                if not aggregate.field:
                    return [row.file.name or row.file.path for row in rows]
                return [value for value in _field_values(rows, aggregate.field) if value is not None]

        if not aggregate.field:
            return None
        values = _field_values(rows, aggregate.field)
        match aggregate.type:
            case AggregateType.SUM:
                return sum(_numbers(values), 0)
            case AggregateType.AVG:
                numbers = _numbers(values)
                return sum(numbers) / len(numbers) if numbers else None
            case AggregateType.MIN:
                return _extreme(values, lambda order: order < 0)
            case AggregateType.MAX:
                return _extreme(values, lambda order: order > 0)
        raise ValueError(f"Unknown aggregate function: {aggregate.type}")
