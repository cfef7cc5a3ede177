"""Customer entity."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from resource_server.domain.entities.schema import (
    EntitySchema,
    FieldDef,
    FieldType,
    NavigationDef,
)
from resource_server.domain.value_objects.identifiers import EntityId


@dataclass(frozen=True)
class Customer:
    """A customer.

    ``Orders`` is not stored here: it is derived from ``Order.customer_id``
    at read time, so the order side owns the relationship.
    """

    id: EntityId
    name: str | None = None
    city: str | None = None

    SCHEMA: ClassVar[EntitySchema] = EntitySchema(
        entity_set="Customers",
        fields=(
            FieldDef("id", "Id", FieldType.INTEGER, nullable=False, key=True),
            FieldDef("name", "Name", FieldType.STRING),
            FieldDef("city", "City", FieldType.STRING),
        ),
        navigations=(
            NavigationDef("Orders", target="Orders", collection=True),
        ),
    )
