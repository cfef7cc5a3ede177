"""Mutation engine.

Implements create, full replacement, merge-patch, delete and link with
validation and conflict detection. Each operation runs under the writer
lock of the collection it changes; operations that read or write the
other collection as well (order references, customer deletion, link)
hold both locks, taken in the store's global order.

Validation happens before the store is touched, so a rejected operation
never leaves a partial change behind.
"""

from __future__ import annotations

import dataclasses
from typing import Literal

from resource_server.domain.entities import Customer, Order
from resource_server.domain.services.entity_store import EntityStore
from resource_server.domain.value_objects import (
    UNSET,
    CustomerChanges,
    EntityId,
    EntityType,
    OrderChanges,
    Outcome,
    is_valid_id,
)

DeletePolicy = Literal["nullify", "cascade"]

CUSTOMER_NAVIGATION = "Customer"


class MutationEngine:
    """Validated writes against the entity store.

    Expected failures are returned as ``Outcome`` values; nothing here
    raises for bad input.
    """

    def __init__(self, store: EntityStore, delete_policy: DeletePolicy = "nullify") -> None:
        """Initialize the engine.

        Args:
            store: The store to mutate.
            delete_policy: What happens to orders that reference a deleted
                customer: "nullify" clears their reference, "cascade"
                deletes them.
        """
        self._store = store
        self._delete_policy = delete_policy

    @property
    def delete_policy(self) -> DeletePolicy:
        return self._delete_policy

    def create(self, entity_type: EntityType, entity: Customer | Order | None) -> Outcome:
        """Insert a new entity.

        Returns:
            CREATED with the stored entity, INVALID_INPUT for a missing
            payload, unset id or unknown customer reference, CONFLICT if
            the id is taken.
        """
        if entity is None:
            return Outcome.invalid("Request body is required")
        if not is_valid_id(entity.id):
            return Outcome.invalid(f"{entity_type.value} requires a non-zero Id")

        with self._store.locked(*self._lock_scope(entity_type)):
            problem = self._check_reference(entity_type, getattr(entity, "customer_id", None))
            if problem is not None:
                return problem
            if not self._store.collection(entity_type).insert(entity):
                return Outcome.conflict(f"{entity_type.value}({entity.id}) already exists")
            return Outcome.created(entity)

    def replace(
        self,
        entity_type: EntityType,
        entity_id: EntityId,
        entity: Customer | Order | None,
    ) -> Outcome:
        """Overwrite every mutable field of an existing entity.

        Fields missing from the replacement carry their type defaults; the
        id is never changed, whatever the replacement's own id says.
        """
        if entity is None:
            return Outcome.invalid("Request body is required")

        collection = self._store.collection(entity_type)
        with self._store.locked(*self._lock_scope(entity_type)):
            if entity_id not in collection:
                return Outcome.not_found(f"{entity_type.value}({entity_id}) not found")
            problem = self._check_reference(entity_type, getattr(entity, "customer_id", None))
            if problem is not None:
                return problem
            return Outcome.ok(collection.replace(entity_id, entity))

    def merge_patch(
        self,
        entity_type: EntityType,
        entity_id: EntityId,
        changes: CustomerChanges | OrderChanges | None,
    ) -> Outcome:
        """Apply only the supplied fields, leaving all others untouched."""
        if changes is None or changes.is_empty():
            return Outcome.invalid("Patch must contain at least one property")

        collection = self._store.collection(entity_type)
        with self._store.locked(*self._lock_scope(entity_type)):
            if entity_id not in collection:
                return Outcome.not_found(f"{entity_type.value}({entity_id}) not found")
            customer_id = getattr(changes, "customer_id", UNSET)
            if customer_id is not UNSET:
                problem = self._check_reference(entity_type, customer_id)
                if problem is not None:
                    return problem
            return Outcome.ok(collection.merge(entity_id, changes))

    def delete(self, entity_type: EntityType, entity_id: EntityId) -> Outcome:
        """Delete an entity if it exists.

        Always succeeds; the outcome value tells whether anything was
        removed. Deleting a customer applies the delete policy to the
        orders that reference it.
        """
        if entity_type is EntityType.ORDERS:
            return Outcome.ok(self._store.orders.remove(entity_id))

        with self._store.locked(EntityType.CUSTOMERS, EntityType.ORDERS):
            for order_id in self._store.order_links.children_of(entity_id):
                if self._delete_policy == "cascade":
                    self._store.orders.remove(order_id)
                else:
                    self._store.orders.update(
                        order_id, lambda o: dataclasses.replace(o, customer_id=None)
                    )
            return Outcome.ok(self._store.customers.remove(entity_id))

    def link(
        self,
        entity_type: EntityType,
        entity_id: EntityId,
        relationship: str,
        related_id: EntityId,
    ) -> Outcome:
        """Point an entity's forward reference at a related entity.

        Only ``Orders(id)/Customer`` is a settable reference. Unresolvable
        ids on either side are INVALID_INPUT, never NOT_FOUND.
        """
        if entity_type is not EntityType.ORDERS or relationship != CUSTOMER_NAVIGATION:
            return Outcome.invalid(
                f"{entity_type.value} has no settable reference '{relationship}'"
            )

        with self._store.locked(EntityType.CUSTOMERS, EntityType.ORDERS):
            if entity_id not in self._store.orders:
                return Outcome.invalid(f"Orders({entity_id}) not found")
            if related_id not in self._store.customers:
                return Outcome.invalid(f"Customers({related_id}) not found")
            return Outcome.ok(
                self._store.orders.update(
                    entity_id, lambda o: dataclasses.replace(o, customer_id=related_id)
                )
            )

    def _lock_scope(self, entity_type: EntityType) -> tuple[EntityType, ...]:
        # Order writes validate their customer reference
        if entity_type is EntityType.ORDERS:
            return (EntityType.CUSTOMERS, EntityType.ORDERS)
        return (entity_type,)

    def _check_reference(self, entity_type: EntityType, customer_id: EntityId | None) -> Outcome | None:
        if entity_type is not EntityType.ORDERS or customer_id is None:
            return None
        if customer_id not in self._store.customers:
            return Outcome.invalid(f"Customers({customer_id}) not found")
        return None
