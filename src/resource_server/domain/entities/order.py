"""Order entity."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from resource_server.domain.entities.schema import (
    MIN_DATETIME,
    EntitySchema,
    FieldDef,
    FieldType,
    NavigationDef,
)
from resource_server.domain.value_objects.identifiers import EntityId


@dataclass(frozen=True)
class Order:
    """An order, optionally linked to the customer who placed it.

    Attributes:
        id: Caller-assigned key
        order_date: Offset-aware timestamp
        amount: Fixed-point amount; floats are never stored
        customer_id: Key of the linked customer, or None when unlinked
    """

    id: EntityId
    order_date: datetime = MIN_DATETIME
    amount: Decimal = field(default_factory=lambda: Decimal(0))
    customer_id: EntityId | None = None

    SCHEMA: ClassVar[EntitySchema] = EntitySchema(
        entity_set="Orders",
        fields=(
            FieldDef("id", "Id", FieldType.INTEGER, nullable=False, key=True),
            FieldDef("order_date", "OrderDate", FieldType.DATETIME, nullable=False),
            FieldDef("amount", "Amount", FieldType.DECIMAL, nullable=False),
            FieldDef("customer_id", "CustomerId", FieldType.INTEGER),
        ),
        navigations=(
            NavigationDef(
                "Customer", target="Customers", collection=False, foreign_key="customer_id"
            ),
        ),
    )

    def __post_init__(self) -> None:
        if self.order_date.tzinfo is None:
            raise ValueError("order_date must carry a UTC offset")
        if isinstance(self.amount, float):
            raise TypeError("amount must be a Decimal, not a float")
