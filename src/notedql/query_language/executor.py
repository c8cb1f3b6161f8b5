"""Query pipeline: FROM, WHERE, FLATTEN, GROUP BY or projection, SORT, LIMIT."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from functools import cmp_to_key

from notedql.query_language.aggregation import (
    AggregateFunction,
    AggregationEngine,
    GroupBySpec,
    parse_aggregate_function,
)
from notedql.query_language.compiler import CompiledExpression, compile_expression
from notedql.query_language.errors import AggregateWithoutGroupByError, QueryRuntimeError
from notedql.query_language.functions import FunctionLibrary
from notedql.query_language.query import (
    FieldSpec,
    ParsedQuery,
    QueryType,
    SortClause,
    SortDirection,
    apply_flatten,
    matches_from_clause,
    parse_query,
)
from notedql.query_language.rows import Row, TaskItem, extract_tasks
from notedql.query_language.runtime import EvalContext, Evaluator
from notedql.query_language.values import compare_values, is_truthy


logger = logging.getLogger("notedql")


@dataclass(slots=True)
class QueryResult:
    """Query output with an echo of the parsed clauses."""

    result_type: str
    columns: list[str] = field(default_factory=list)
    rows: list[Row] = field(default_factory=list)
    tasks: list[TaskItem] = field(default_factory=list)
    query: dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Return plain data representation of the result."""
        payload: dict[str, object] = {"result_type": self.result_type}
        if self.result_type == "task":
            payload["tasks"] = [task.as_dict() for task in self.tasks]
        else:
            payload["columns"] = list(self.columns)
            payload["rows"] = [row.as_dict() for row in self.rows]
        payload["query"] = self.query
        return payload


@dataclass(frozen=True, slots=True)
class _Projection:
    """Compiled field expression with its output column."""

    spec: FieldSpec
    compiled: CompiledExpression


class QueryExecutor:
    """Run parsed queries against externally supplied rows.

    Args:
        now: Clock used for relative dates; defaults to the time of each execution.
    """

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now
        self.aggregation = AggregationEngine()

    def execute(self, parsed: ParsedQuery, rows: Iterable[Row]) -> QueryResult:
        """Execute one parsed query.

        Raises:
            QueryParseError: If a WHERE, field or SORT expression is malformed.
            AggregateWithoutGroupByError: If aggregates are used without GROUP BY.
        """
        evaluator = Evaluator(FunctionLibrary(self.now))
        where = compile_expression(parsed.where) if parsed.where else None

        candidates = list(rows)
        if parsed.from_clause is not None:
            from_clause = parsed.from_clause
            candidates = [
                row for row in candidates if matches_from_clause(row.path, row.fields, from_clause)
            ]
        logger.info("FROM kept %d row(s)", len(candidates))

        if parsed.type == QueryType.TASK:
            return self._execute_tasks(parsed, candidates, where, evaluator)

        aggregates, projections = _split_field_specs(parsed)
        if aggregates and not parsed.group_by:
            raise AggregateWithoutGroupByError(
                "Aggregate functions require a GROUP BY clause: "
                + ", ".join(spec.expression for spec, _ in aggregates)
            )
        columns = (
            [*parsed.group_by, *(aggregate.name for _, aggregate in aggregates)]
            if parsed.group_by
            else [projection.spec.name for projection in projections]
        )
        sort_expression = _compile_sort(parsed.sort, columns)

        if where is not None:
            candidates = [row for row in candidates if _passes(where, row.context(), evaluator)]
            logger.info("WHERE kept %d row(s)", len(candidates))

        if parsed.flatten:
            candidates = apply_flatten(candidates, parsed.flatten)
            logger.info("FLATTEN produced %d row(s)", len(candidates))

        if parsed.group_by:
            spec = GroupBySpec(parsed.group_by, tuple(aggregate for _, aggregate in aggregates))
            groups = self.aggregation.group_by(candidates, spec)
            results = [
                (group.rows[0], Row(group.rows[0].file, {**group.group_key, **group.aggregates}))
                for group in groups
            ]
            logger.info("GROUP BY produced %d group(s)", len(results))
        else:
            results = [(row, _project(row, projections, evaluator)) for row in candidates]

        if parsed.sort is not None:
            results = _sort_results(results, parsed.sort, sort_expression, evaluator)

        output = [projected for _, projected in results]
        if parsed.limit is not None and parsed.limit > 0:
            output = output[: parsed.limit]

        return QueryResult(
            result_type=parsed.type.lower(),
            columns=columns,
            rows=output,
            query=parsed.describe(),
        )

    def _execute_tasks(
        self,
        parsed: ParsedQuery,
        rows: list[Row],
        where: CompiledExpression | None,
        evaluator: Evaluator,
    ) -> QueryResult:
        """Extract checklist items, filter them with WHERE and apply LIMIT."""
        tasks: list[TaskItem] = []
        for row in rows:
            for task in extract_tasks(row):
                if where is None or _passes(where, task.context(row.file), evaluator):
                    tasks.append(task)
        logger.info("TASK matched %d item(s)", len(tasks))
        if parsed.limit is not None and parsed.limit > 0:
            tasks = tasks[: parsed.limit]
        return QueryResult(result_type="task", tasks=tasks, query=parsed.describe())


def _split_field_specs(
    parsed: ParsedQuery,
) -> tuple[list[tuple[FieldSpec, AggregateFunction]], list[_Projection]]:
    """Separate aggregate field specs from compiled plain projections."""
    aggregates: list[tuple[FieldSpec, AggregateFunction]] = []
    projections: list[_Projection] = []
    for spec in parsed.fields:
        aggregate = parse_aggregate_function(spec.expression)
        if aggregate is not None:
            if spec.alias is not None:
                aggregate = AggregateFunction(aggregate.type, aggregate.field, spec.alias)
            aggregates.append((spec, aggregate))
            continue
        expression = "file.name" if spec.expression == "file" else spec.expression
        projections.append(_Projection(spec, compile_expression(expression)))
    return aggregates, projections


def _compile_sort(sort: SortClause | None, columns: list[str]) -> CompiledExpression | None:
    """Compile SORT field when it does not name an output column."""
    if sort is None or sort.field in columns:
        return None
    return compile_expression(sort.field)


def _passes(where: CompiledExpression, context: EvalContext, evaluator: Evaluator) -> bool:
    """Evaluate WHERE predicate; evaluation failures exclude the row."""
    try:
        return is_truthy(where.evaluate(context, evaluator))
    except QueryRuntimeError as exc:
        logger.debug("WHERE %r failed, row excluded: %s", where.source, exc)
        return False


def _project(row: Row, projections: list[_Projection], evaluator: Evaluator) -> Row:
    """Evaluate every field expression into a fresh fields map."""
    context = row.context()
    fields: dict[str, object] = {}
    for projection in projections:
        try:
            fields[projection.spec.name] = projection.compiled.evaluate(context, evaluator)
        except QueryRuntimeError as exc:
            logger.debug("Field %r failed on %s: %s", projection.spec.expression, row.path, exc)
            fields[projection.spec.name] = None
    return Row(row.file, fields)


def _sort_results(
    results: list[tuple[Row, Row]],
    sort: SortClause,
    expression: CompiledExpression | None,
    evaluator: Evaluator,
) -> list[tuple[Row, Row]]:
    """Stable single-key sort; incomparable values compare equal."""

    def sort_value(source: Row, projected: Row) -> object:
        if expression is None:
            return projected.fields.get(sort.field)
        try:
            return expression.evaluate(source.context(), evaluator)
        except QueryRuntimeError as exc:
            logger.debug("SORT %r failed on %s: %s", sort.field, source.path, exc)
            return None

    keyed = [(sort_value(source, projected), source, projected) for source, projected in results]
    sign = -1 if sort.direction == SortDirection.DESC else 1
    keyed.sort(key=cmp_to_key(lambda left, right: sign * compare_values(left[0], right[0])))
    return [(source, projected) for _, source, projected in keyed]


def run_query(text: str, rows: Iterable[Row], now: datetime | None = None) -> QueryResult:
    """Parse and execute query text."""
    return QueryExecutor(now).execute(parse_query(text), rows)
