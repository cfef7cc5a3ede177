"""Application layer for the resource server.

The application layer decodes requests and orchestrates the domain
engines behind the resource facade.

Exports:
    Facade:
        - ResourceService: Entry point for every resource operation
    Wiring:
        - Container, build_container, get_container: Component wiring
    Payloads:
        - PayloadError: Undecodable request body
        - decode_entity, decode_changes, parse_reference: Body decoding
    Seed:
        - seed_store, SEED_CUSTOMERS, SEED_ORDERS: Deterministic dataset
"""

from resource_server.application.bootstrap import Container, build_container, get_container
from resource_server.application.payloads import (
    PayloadError,
    decode_changes,
    decode_entity,
    parse_reference,
)
from resource_server.application.resource_service import ResourceService
from resource_server.application.seed import SEED_CUSTOMERS, SEED_ORDERS, seed_store

__all__ = [
    "ResourceService",
    "Container",
    "build_container",
    "get_container",
    "PayloadError",
    "decode_entity",
    "decode_changes",
    "parse_reference",
    "seed_store",
    "SEED_CUSTOMERS",
    "SEED_ORDERS",
]
