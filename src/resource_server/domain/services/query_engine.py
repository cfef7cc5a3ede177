"""Query engine.

Evaluates a ``QuerySpec`` against a ``StoreSnapshot``. Every stage is a
pure function over an immutable input sequence, so evaluation can never
observe a concurrent write and each stage can be tested on a hand-built
snapshot.

Pipeline for entity queries:
    filter -> count -> orderby -> skip -> top -> expand/select

Pipeline for aggregate queries ($apply):
    filter -> group/aggregate -> orderby -> skip -> top

Sorting is stable and multi-key: ties keep their snapshot order, which
makes pagination deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Sequence

from resource_server.domain.entities import SCHEMAS, Customer, EntitySchema, Order
from resource_server.domain.services.entity_store import StoreSnapshot
from resource_server.domain.value_objects import (
    AggregateFunc,
    AggregateItem,
    Aggregation,
    ComparisonExpr,
    ComparisonOp,
    EntityType,
    Expression,
    LiteralExpr,
    LogicalExpr,
    LogicalOp,
    OrderByItem,
    PropertyExpr,
    QuerySpec,
)

Entity = Customer | Order
Resolver = Callable[[Any, tuple[str, ...]], Any]


@dataclass(frozen=True)
class EntityView:
    """An entity as returned by a query.

    Attributes:
        entity: The entity version from the snapshot
        schema: Its schema
        expanded: Navigation name -> related entity, list of entities, or None
        select: Wire names to keep, or None for all fields
    """

    entity: Entity
    schema: EntitySchema
    expanded: Mapping[str, Any] = field(default_factory=dict)
    select: tuple[str, ...] | None = None

    def to_record(self) -> dict[str, Any]:
        """Flatten into wire name -> value, with expanded navigations inlined."""
        record = self.schema.to_record(self.entity)
        if self.select is not None:
            keep = {self.schema.key_field.wire_name, *self.select}
            record = {k: v for k, v in record.items() if k in keep}

        for name, related in self.expanded.items():
            nav = self.schema.navigation(name)
            target = SCHEMAS[nav.target]
            if related is None:
                record[name] = None
            elif isinstance(related, (list, tuple)):
                record[name] = [target.to_record(r) for r in related]
            else:
                record[name] = target.to_record(related)
        return record


@dataclass
class QueryResult:
    """Result of evaluating a query.

    ``rows`` holds ``EntityView`` objects for entity queries and plain
    dicts for aggregate queries. ``count`` is the filtered cardinality
    before paging, set only when the query asked for it.
    """

    rows: list[Any] = field(default_factory=list)
    count: int | None = None
    aggregated: bool = False

    def records(self) -> list[dict[str, Any]]:
        if self.aggregated:
            return [dict(row) for row in self.rows]
        return [row.to_record() for row in self.rows]


class QueryEngine:
    """Evaluates parsed queries against store snapshots."""

    def evaluate(
        self,
        snapshot: StoreSnapshot,
        entity_type: EntityType,
        spec: QuerySpec,
    ) -> QueryResult:
        """Run a query.

        Args:
            snapshot: Point-in-time view of the store.
            entity_type: Collection to query.
            spec: Parsed query.

        Returns:
            The entity page, or the aggregate rows when ``spec.apply`` is set.
        """
        schema = SCHEMAS[entity_type.value]
        resolve = entity_resolver(snapshot, schema)
        entities: Sequence[Entity] = snapshot.entities(entity_type)

        if spec.filter is not None:
            entities = filter_rows(entities, spec.filter, resolve)

        if spec.apply is not None:
            rows = aggregate_rows(entities, spec.apply, resolve)
            rows = sort_rows(rows, spec.orderby, record_resolver)
            return QueryResult(rows=page_rows(rows, spec.skip, spec.top), aggregated=True)

        count = len(entities) if spec.count else None
        entities = sort_rows(entities, spec.orderby, resolve)
        entities = page_rows(entities, spec.skip, spec.top)
        views = [
            EntityView(
                entity=e,
                schema=schema,
                expanded=expand(snapshot, schema, e, spec.expand),
                select=spec.select,
            )
            for e in entities
        ]
        return QueryResult(rows=views, count=count)

    def get_by_key(
        self,
        snapshot: StoreSnapshot,
        entity_type: EntityType,
        key: int,
        spec: QuerySpec | None = None,
    ) -> EntityView | None:
        """Single-entity read: a query filtered on identity equality.

        Returns:
            The matching entity, or None when the key does not resolve.
        """
        spec = spec or QuerySpec()
        schema = SCHEMAS[entity_type.value]
        by_key = QuerySpec(
            filter=ComparisonExpr(
                PropertyExpr((schema.key_field.wire_name,)), ComparisonOp.EQ, LiteralExpr(key)
            ),
            expand=spec.expand,
            select=spec.select,
        )
        result = self.evaluate(snapshot, entity_type, by_key)
        if not result.rows:
            return None
        return result.rows[0]


def entity_resolver(snapshot: StoreSnapshot, schema: EntitySchema) -> Resolver:
    """Build a property-path resolver for entities of one schema.

    Paths are either a scalar field (``Amount``) or a single-valued
    navigation followed by a scalar field (``Customer/City``). A null or
    dangling reference resolves to None.
    """

    def resolve(entity: Any, path: tuple[str, ...]) -> Any:
        head = path[0]
        if len(path) == 1:
            return getattr(entity, schema.field(head).name)

        nav = schema.navigation(head)
        related = snapshot.customer(getattr(entity, nav.foreign_key))
        if related is None:
            return None
        return getattr(related, SCHEMAS[nav.target].field(path[1]).name)

    return resolve


def record_resolver(row: Mapping[str, Any], path: tuple[str, ...]) -> Any:
    """Resolve a path against an aggregate output row."""
    return row.get("/".join(path))


def evaluate_expression(expr: Expression, item: Any, resolve: Resolver) -> Any:
    """Evaluate a filter expression against one item."""
    if isinstance(expr, LiteralExpr):
        return expr.value
    if isinstance(expr, PropertyExpr):
        return resolve(item, expr.path)
    if isinstance(expr, ComparisonExpr):
        left = evaluate_expression(expr.left, item, resolve)
        right = evaluate_expression(expr.right, item, resolve)
        return compare(left, expr.op, right)
    if isinstance(expr, LogicalExpr):
        if expr.op == LogicalOp.AND:
            return all(evaluate_expression(o, item, resolve) is True for o in expr.operands)
        if expr.op == LogicalOp.OR:
            return any(evaluate_expression(o, item, resolve) is True for o in expr.operands)
        return evaluate_expression(expr.operands[0], item, resolve) is not True
    raise TypeError(f"Unsupported expression type: {type(expr).__name__}")


def compare(left: Any, op: ComparisonOp, right: Any) -> bool:
    """Compare two values.

    ``eq``/``ne`` treat null as an ordinary value; ordering operators
    are false when either side is null. Strings compare ordinally and
    offset-aware datetimes compare by absolute instant.
    """
    if op == ComparisonOp.EQ:
        return left == right
    if op == ComparisonOp.NE:
        return left != right
    if left is None or right is None:
        return False
    if op == ComparisonOp.GT:
        return left > right
    if op == ComparisonOp.GE:
        return left >= right
    if op == ComparisonOp.LT:
        return left < right
    return left <= right


def filter_rows(rows: Iterable[Any], predicate: Expression, resolve: Resolver) -> list[Any]:
    return [r for r in rows if evaluate_expression(predicate, r, resolve) is True]


def _null_first_key(value: Any) -> tuple[bool, Any]:
    return (value is not None, value)


def sort_rows(
    rows: Sequence[Any],
    orderby: Sequence[OrderByItem],
    resolve: Resolver,
) -> list[Any]:
    """Stable multi-key sort; nulls sort first in ascending order."""
    result = list(rows)
    # Sorting by the least significant key first relies on sort stability
    for item in reversed(orderby):
        result.sort(
            key=lambda r, path=item.path: _null_first_key(resolve(r, path)),
            reverse=not item.ascending,
        )
    return result


def page_rows(rows: Sequence[Any], skip: int | None, top: int | None) -> list[Any]:
    """Skip first, then take top. A skip past the end yields an empty page."""
    start = skip or 0
    if top is None:
        return list(rows[start:])
    return list(rows[start:start + top])


def aggregate_rows(
    rows: Sequence[Any],
    aggregation: Aggregation,
    resolve: Resolver,
) -> list[dict[str, Any]]:
    """Compute one output record per distinct group.

    Without grouping there is always exactly one record, even for an
    empty input. Groups appear in order of first occurrence.
    """
    groups: dict[tuple[Any, ...], list[Any]] = {}
    if not aggregation.group_by:
        groups[()] = list(rows)
    else:
        for row in rows:
            key = tuple(resolve(row, path) for path in aggregation.group_by)
            groups.setdefault(key, []).append(row)

    output = []
    for key, members in groups.items():
        record: dict[str, Any] = {
            "/".join(path): value for path, value in zip(aggregation.group_by, key)
        }
        for item in aggregation.aggregates:
            record[item.alias] = compute_aggregate(item, members, resolve)
        output.append(record)
    return output


def compute_aggregate(item: AggregateItem, rows: Sequence[Any], resolve: Resolver) -> Any:
    if item.path is None:
        return len(rows)

    values = [v for v in (resolve(r, item.path) for r in rows) if v is not None]
    if item.func == AggregateFunc.COUNT:
        return len(values)
    if item.func == AggregateFunc.SUM:
        return sum(values)
    if not values:
        return None
    if item.func == AggregateFunc.AVERAGE:
        # Decimal division keeps currency amounts exact
        return Decimal(sum(values)) / len(values)
    if item.func == AggregateFunc.MIN:
        return min(values)
    return max(values)


def expand(
    snapshot: StoreSnapshot,
    schema: EntitySchema,
    entity: Entity,
    navigations: Iterable[str],
) -> dict[str, Any]:
    """Materialize the requested navigation properties of one entity."""
    expanded: dict[str, Any] = {}
    for name in sorted(navigations):
        nav = schema.navigation(name)
        if nav.collection:
            expanded[name] = list(snapshot.orders_of(entity.id))
        else:
            expanded[name] = snapshot.customer(getattr(entity, nav.foreign_key))
    return expanded
