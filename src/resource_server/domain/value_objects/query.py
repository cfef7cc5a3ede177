"""Query description types.

A ``QuerySpec`` is the parsed, schema-checked form of a list request. Its
filter is a small expression tree evaluated per entity by the query engine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ComparisonOp(Enum):
    """Comparison operators for predicates."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GE = "ge"
    LT = "lt"
    LE = "le"


class LogicalOp(Enum):
    """Logical operators for combining predicates."""

    AND = "and"
    OR = "or"
    NOT = "not"


class AggregateFunc(Enum):
    """Aggregation functions."""

    SUM = "sum"
    AVERAGE = "average"
    MIN = "min"
    MAX = "max"
    COUNT = "count"


@dataclass(frozen=True)
class Expression(ABC):
    """Base class for filter expressions."""

    @abstractmethod
    def __str__(self) -> str:
        pass


@dataclass(frozen=True)
class PropertyExpr(Expression):
    """A property path, e.g. ``Amount`` or ``Customer/City``."""

    path: tuple[str, ...]

    def __str__(self) -> str:
        return "/".join(self.path)


@dataclass(frozen=True)
class LiteralExpr(Expression):
    """A literal value, already coerced to the compared property's type."""

    value: Any

    def __str__(self) -> str:
        if self.value is None:
            return "null"
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        if isinstance(self.value, str):
            escaped = self.value.replace("'", "''")
            return f"'{escaped}'"
        if isinstance(self.value, datetime):
            return self.value.isoformat()
        return str(self.value)


@dataclass(frozen=True)
class ComparisonExpr(Expression):
    """Binary comparison (e.g., ``Amount gt 100``)."""

    left: Expression
    op: ComparisonOp
    right: Expression

    def __str__(self) -> str:
        return f"{self.left} {self.op.value} {self.right}"


@dataclass(frozen=True)
class LogicalExpr(Expression):
    """Logical expression combining other expressions."""

    op: LogicalOp
    operands: tuple[Expression, ...] = ()

    def __str__(self) -> str:
        if self.op == LogicalOp.NOT:
            return f"not ({self.operands[0]})"
        op_str = f" {self.op.value} "
        return f"({op_str.join(str(o) for o in self.operands)})"


@dataclass(frozen=True)
class OrderByItem:
    """A sort key."""

    path: tuple[str, ...]
    ascending: bool = True

    def __str__(self) -> str:
        return f"{'/'.join(self.path)} {'asc' if self.ascending else 'desc'}"


@dataclass(frozen=True)
class AggregateItem:
    """One aggregation: ``field with func as alias``.

    ``path`` is None for a plain row count (``$count as alias``).
    """

    path: tuple[str, ...] | None
    func: AggregateFunc
    alias: str

    def __str__(self) -> str:
        if self.path is None:
            return f"$count as {self.alias}"
        return f"{'/'.join(self.path)} with {self.func.value} as {self.alias}"


@dataclass(frozen=True)
class Aggregation:
    """Aggregation pipeline, optionally grouped."""

    aggregates: tuple[AggregateItem, ...]
    group_by: tuple[tuple[str, ...], ...] = ()

    @property
    def output_names(self) -> list[str]:
        return ["/".join(p) for p in self.group_by] + [a.alias for a in self.aggregates]

    def __str__(self) -> str:
        aggs = ", ".join(str(a) for a in self.aggregates)
        if not self.group_by:
            return f"aggregate({aggs})"
        groups = ", ".join("/".join(p) for p in self.group_by)
        return f"groupby(({groups}), aggregate({aggs}))"


@dataclass(frozen=True)
class QuerySpec:
    """A complete list query. Every part is optional; absence is a no-op."""

    filter: Expression | None = None
    orderby: tuple[OrderByItem, ...] = ()
    skip: int | None = None
    top: int | None = None
    expand: frozenset[str] = field(default_factory=frozenset)
    select: tuple[str, ...] | None = None
    count: bool = False
    apply: Aggregation | None = None

    @property
    def is_aggregate(self) -> bool:
        return self.apply is not None
