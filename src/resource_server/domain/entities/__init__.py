"""Domain entities for the resource server.

Exports:
    - Customer: A customer; its orders are derived, not stored
    - Order: An order with an optional customer reference
    - EntitySchema, FieldDef, FieldType, NavigationDef: Public shape metadata
"""

from resource_server.domain.entities.customer import Customer
from resource_server.domain.entities.order import Order
from resource_server.domain.entities.schema import (
    MIN_DATETIME,
    EntitySchema,
    FieldDef,
    FieldType,
    NavigationDef,
)

SCHEMAS: dict[str, EntitySchema] = {
    Customer.SCHEMA.entity_set: Customer.SCHEMA,
    Order.SCHEMA.entity_set: Order.SCHEMA,
}
"""Entity-set name -> schema, for resolving navigation targets."""

__all__ = [
    "SCHEMAS",
    "Customer",
    "Order",
    "EntitySchema",
    "FieldDef",
    "FieldType",
    "NavigationDef",
    "MIN_DATETIME",
]
