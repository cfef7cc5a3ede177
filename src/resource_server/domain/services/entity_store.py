"""In-memory entity store.

The store holds one keyed collection per entity type and owns identity
and relationship wiring.

Concurrency model:
    - Entities are immutable. A write builds a new version and swaps it
      into the collection while holding that collection's writer lock
      (copy-on-write), so a snapshot is just a tuple of references.
    - Each collection has one re-entrant writer lock. Operations that
      touch both collections take the locks in ``EntityType.lock_rank``
      order (Customers before Orders), which rules out lock-order
      deadlocks.
    - ``EntityStore.snapshot()`` briefly holds both locks to capture a
      view that is consistent across collections; query evaluation then
      runs on the snapshot without any lock held.

The customer -> orders relationship is kept in a ``RelationshipIndex``
that follows every change to the Orders collection.
"""

from __future__ import annotations

import dataclasses
import threading
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Callable, Generic, Iterator, Mapping, TypeVar

from resource_server.domain.entities import Customer, Order
from resource_server.domain.value_objects import (
    CustomerChanges,
    EntityId,
    EntityType,
    OrderChanges,
    StoreCorruptionError,
)

T = TypeVar("T", Customer, Order)

ChangeObserver = Callable[[Any, Any], None]


class EntityCollection(Generic[T]):
    """Insertion-ordered collection of one entity type, keyed by id.

    Insertion order is preserved across replace/merge so that snapshots,
    and therefore unsorted query results and pagination, are deterministic.

    Thread Safety:
        All operations are serialized by a re-entrant writer lock, exposed
        as ``lock`` so multi-collection operations can hold it across
        several calls.
    """

    def __init__(self, entity_type: EntityType) -> None:
        self._entity_type = entity_type
        self._lock = threading.RLock()
        self._entities: dict[EntityId, T] = {}
        self._observers: list[ChangeObserver] = []

    @property
    def entity_type(self) -> EntityType:
        return self._entity_type

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def subscribe(self, observer: ChangeObserver) -> None:
        """Register a callback invoked with (old, new) after every change."""
        self._observers.append(observer)

    def insert(self, entity: T) -> bool:
        """Insert a new entity.

        Returns:
            False if an entity with the same id already exists.
        """
        with self._lock:
            if entity.id in self._entities:
                return False
            self._entities[entity.id] = entity
            self._notify(None, entity)
            return True

    def get(self, entity_id: EntityId) -> T | None:
        with self._lock:
            return self._entities.get(entity_id)

    def all(self) -> tuple[T, ...]:
        """Return a point-in-time, insertion-ordered snapshot."""
        with self._lock:
            return tuple(self._entities.values())

    def remove(self, entity_id: EntityId) -> bool:
        """Remove an entity. Returns True if it existed."""
        with self._lock:
            old = self._entities.pop(entity_id, None)
            if old is None:
                return False
            self._notify(old, None)
            return True

    def replace(self, entity_id: EntityId, entity: T) -> T | None:
        """Overwrite every field of an existing entity; its id is kept.

        Returns:
            The stored version, or None if entity_id is absent.
        """
        return self.update(entity_id, lambda _: dataclasses.replace(entity, id=entity_id))

    def merge(self, entity_id: EntityId, changes: CustomerChanges | OrderChanges) -> T | None:
        """Apply only the supplied fields to an existing entity.

        Returns:
            The stored version, or None if entity_id is absent.
        """
        return self.update(entity_id, changes.apply_to)

    def update(self, entity_id: EntityId, mutate: Callable[[T], T]) -> T | None:
        """Swap in ``mutate(current)`` as the new version of an entity."""
        with self._lock:
            old = self._entities.get(entity_id)
            if old is None:
                return None
            new = mutate(old)
            if new.id != entity_id:
                raise StoreCorruptionError(
                    f"{self._entity_type.value}({entity_id}) changed identity to {new.id}"
                )
            self._entities[entity_id] = new
            self._notify(old, new)
            return new

    def is_empty(self) -> bool:
        with self._lock:
            return not self._entities

    def __len__(self) -> int:
        with self._lock:
            return len(self._entities)

    def __contains__(self, entity_id: object) -> bool:
        with self._lock:
            return entity_id in self._entities

    def _notify(self, old: T | None, new: T | None) -> None:
        for observer in self._observers:
            observer(old, new)


class RelationshipIndex:
    """Customer id -> ids of the orders that reference it.

    Maintained incrementally from Orders change events; children keep the
    order in which they were linked.
    """

    def __init__(self) -> None:
        self._children: dict[EntityId, dict[EntityId, None]] = {}

    def track(self, old: Order | None, new: Order | None) -> None:
        """Update the index for one order change."""
        old_parent = old.customer_id if old is not None else None
        new_parent = new.customer_id if new is not None else None
        if old is not None and new is not None and old_parent == new_parent:
            return
        if old is not None and old_parent is not None:
            self._unlink(old_parent, old.id)
        if new is not None and new_parent is not None:
            self._children.setdefault(new_parent, {})[new.id] = None

    def children_of(self, parent_id: EntityId) -> tuple[EntityId, ...]:
        return tuple(self._children.get(parent_id, ()))

    def edges(self) -> Iterator[tuple[EntityId, EntityId]]:
        """Yield (customer id, order id) pairs."""
        for parent_id, children in self._children.items():
            for child_id in children:
                yield parent_id, child_id

    def _unlink(self, parent_id: EntityId, child_id: EntityId) -> None:
        children = self._children.get(parent_id)
        if children is None or child_id not in children:
            raise StoreCorruptionError(
                f"Relationship index lost edge Customers({parent_id}) -> Orders({child_id})"
            )
        del children[child_id]
        if not children:
            del self._children[parent_id]


@dataclass(frozen=True)
class StoreSnapshot:
    """Immutable, consistent view of the whole store."""

    customers: tuple[Customer, ...] = ()
    orders: tuple[Order, ...] = ()
    orders_by_customer: Mapping[EntityId, tuple[Order, ...]] = field(default_factory=dict)

    def entities(self, entity_type: EntityType) -> tuple[Customer, ...] | tuple[Order, ...]:
        if entity_type is EntityType.CUSTOMERS:
            return self.customers
        return self.orders

    @cached_property
    def _customers_by_id(self) -> dict[EntityId, Customer]:
        return {c.id: c for c in self.customers}

    def customer(self, customer_id: EntityId | None) -> Customer | None:
        """Resolve a customer reference; dangling or null references give None."""
        if customer_id is None:
            return None
        return self._customers_by_id.get(customer_id)

    def orders_of(self, customer_id: EntityId) -> tuple[Order, ...]:
        return self.orders_by_customer.get(customer_id, ())


class EntityStore:
    """The two entity collections plus the relationship index."""

    def __init__(self) -> None:
        self.customers: EntityCollection[Customer] = EntityCollection(EntityType.CUSTOMERS)
        self.orders: EntityCollection[Order] = EntityCollection(EntityType.ORDERS)
        self.order_links = RelationshipIndex()
        self.orders.subscribe(self.order_links.track)

    def collection(self, entity_type: EntityType) -> EntityCollection:
        if entity_type is EntityType.CUSTOMERS:
            return self.customers
        return self.orders

    @contextmanager
    def locked(self, *entity_types: EntityType) -> Iterator[None]:
        """Hold the writer locks of the given collections, in global rank order."""
        ordered = sorted(set(entity_types), key=lambda t: t.lock_rank)
        with ExitStack() as stack:
            for entity_type in ordered:
                stack.enter_context(self.collection(entity_type).lock)
            yield

    def snapshot(self) -> StoreSnapshot:
        """Capture a consistent view of both collections."""
        with self.locked(EntityType.CUSTOMERS, EntityType.ORDERS):
            customers = self.customers.all()
            orders = self.orders.all()
            edges = list(self.order_links.edges())

        position = {o.id: i for i, o in enumerate(orders)}
        by_id = {o.id: o for o in orders}
        grouped: dict[EntityId, list[EntityId]] = {}
        for parent_id, child_id in edges:
            grouped.setdefault(parent_id, []).append(child_id)

        orders_by_customer = {
            parent_id: tuple(by_id[c] for c in sorted(children, key=position.__getitem__))
            for parent_id, children in grouped.items()
        }
        return StoreSnapshot(
            customers=customers,
            orders=orders,
            orders_by_customer=orders_by_customer,
        )

    def counts(self) -> dict[str, int]:
        return {
            EntityType.CUSTOMERS.value: len(self.customers),
            EntityType.ORDERS.value: len(self.orders),
        }

    def verify(self) -> None:
        """Check the relationship index against the Orders collection.

        Raises:
            StoreCorruptionError: If an edge is missing or stale.
        """
        with self.locked(EntityType.ORDERS):
            expected = {(o.customer_id, o.id) for o in self.orders.all() if o.customer_id is not None}
            actual = set(self.order_links.edges())
        if expected != actual:
            raise StoreCorruptionError(
                f"Relationship index out of sync: missing={sorted(expected - actual)} "
                f"stale={sorted(actual - expected)}"
            )
