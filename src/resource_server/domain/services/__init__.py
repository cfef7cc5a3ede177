"""Domain services for the resource server.

Exports:
    - EntityStore, EntityCollection, RelationshipIndex, StoreSnapshot: In-memory store
    - QueryEngine, QueryResult, EntityView: Read path
    - MutationEngine: Write path
"""

from resource_server.domain.services.entity_store import (
    EntityCollection,
    EntityStore,
    RelationshipIndex,
    StoreSnapshot,
)
from resource_server.domain.services.mutation_engine import MutationEngine
from resource_server.domain.services.query_engine import (
    EntityView,
    QueryEngine,
    QueryResult,
)

__all__ = [
    "EntityStore",
    "EntityCollection",
    "RelationshipIndex",
    "StoreSnapshot",
    "QueryEngine",
    "QueryResult",
    "EntityView",
    "MutationEngine",
]
