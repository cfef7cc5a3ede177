"""Value objects for the resource server domain.

Exports:
    Identifiers:
        - EntityId: Caller-assigned entity key
        - INVALID_ENTITY_ID: The "unset" key, rejected on create
        - EntityType: Served entity sets and their lock order

    Outcomes:
        - Outcome, OutcomeKind: Typed operation results
        - StoreCorruptionError: Fatal invariant violation

    Changes:
        - UNSET, CustomerChanges, OrderChanges: Merge-patch field sets

    Query:
        - QuerySpec and the filter/sort/aggregate building blocks
"""

from resource_server.domain.value_objects.changes import (
    UNSET,
    CustomerChanges,
    OrderChanges,
)
from resource_server.domain.value_objects.identifiers import (
    INVALID_ENTITY_ID,
    EntityId,
    EntityType,
    is_valid_id,
)
from resource_server.domain.value_objects.outcomes import (
    Outcome,
    OutcomeKind,
    StoreCorruptionError,
)
from resource_server.domain.value_objects.query import (
    AggregateFunc,
    AggregateItem,
    Aggregation,
    ComparisonExpr,
    ComparisonOp,
    Expression,
    LiteralExpr,
    LogicalExpr,
    LogicalOp,
    OrderByItem,
    PropertyExpr,
    QuerySpec,
)

__all__ = [
    # Identifiers
    "EntityId",
    "EntityType",
    "INVALID_ENTITY_ID",
    "is_valid_id",
    # Outcomes
    "Outcome",
    "OutcomeKind",
    "StoreCorruptionError",
    # Changes
    "UNSET",
    "CustomerChanges",
    "OrderChanges",
    # Query
    "QuerySpec",
    "Expression",
    "PropertyExpr",
    "LiteralExpr",
    "ComparisonExpr",
    "ComparisonOp",
    "LogicalExpr",
    "LogicalOp",
    "OrderByItem",
    "AggregateFunc",
    "AggregateItem",
    "Aggregation",
]
