"""Deterministic seed dataset.

Three customers and five orders. Every order is linked; customer 3 has
no orders.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from resource_server.domain.entities import Customer, Order
from resource_server.domain.services import EntityStore
from resource_server.domain.value_objects import EntityId, EntityType

SEED_CUSTOMERS: tuple[Customer, ...] = (
    Customer(id=EntityId(1), name="Sue", city="NBI"),
    Customer(id=EntityId(2), name="Joe", city="MSA"),
    Customer(id=EntityId(3), name="Luc", city="NBI"),
)


def _utc(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


SEED_ORDERS: tuple[Order, ...] = (
    Order(id=EntityId(1), order_date=_utc(2024, 4, 7), amount=Decimal("190"), customer_id=EntityId(2)),
    Order(id=EntityId(2), order_date=_utc(2024, 4, 3), amount=Decimal("130"), customer_id=EntityId(1)),
    Order(id=EntityId(3), order_date=_utc(2024, 4, 13), amount=Decimal("50"), customer_id=EntityId(1)),
    Order(id=EntityId(4), order_date=_utc(2024, 4, 17), amount=Decimal("110"), customer_id=EntityId(2)),
    Order(id=EntityId(5), order_date=_utc(2024, 4, 5), amount=Decimal("70"), customer_id=EntityId(1)),
)


def seed_store(store: EntityStore) -> dict[str, int]:
    """Load the seed dataset into every empty collection.

    A collection that already holds entities is left alone, so repeated
    calls never duplicate data.

    Returns:
        Entity-set name -> number of entities inserted.
    """
    inserted = {"Customers": 0, "Orders": 0}
    with store.locked(EntityType.CUSTOMERS, EntityType.ORDERS):
        if store.customers.is_empty():
            for customer in SEED_CUSTOMERS:
                inserted["Customers"] += store.customers.insert(customer)
        if store.orders.is_empty():
            for order in SEED_ORDERS:
                inserted["Orders"] += store.orders.insert(order)
    return inserted
