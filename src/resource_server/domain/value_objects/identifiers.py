"""Entity identifiers and entity-set names.

Identity is caller-assigned: clients choose the integer key when they
create an entity, and the key never changes afterwards.
"""

from __future__ import annotations

from enum import Enum
from typing import NewType


EntityId = NewType("EntityId", int)
"""Caller-assigned key of a Customer or Order. Unique within its collection."""

# Zero is the "unset" key and is never accepted on create
INVALID_ENTITY_ID = EntityId(0)


def is_valid_id(value: int | None) -> bool:
    """Return True if value can be used as the key of a new entity."""
    return value is not None and value != INVALID_ENTITY_ID


class EntityType(Enum):
    """Entity collections known to the store.

    The value is the public entity-set name. ``lock_rank`` defines the
    global order in which writer locks are taken when an operation spans
    both collections.
    """

    CUSTOMERS = "Customers"
    ORDERS = "Orders"

    @property
    def lock_rank(self) -> int:
        return _LOCK_RANKS[self]

    @classmethod
    def from_set_name(cls, name: str) -> EntityType | None:
        """Resolve an entity-set name, or None if it is not served."""
        for member in cls:
            if member.value == name:
                return member
        return None


_LOCK_RANKS = {
    EntityType.CUSTOMERS: 0,
    EntityType.ORDERS: 1,
}
