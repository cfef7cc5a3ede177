"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are abstract interfaces (protocols) that define contracts:
- Inbound ports: APIs offered to clients (e.g., ResourceAPI)

Adapters implement or consume these ports with concrete functionality.
"""

from resource_server.ports.inbound import QueryOptions, ResourceAPI

__all__ = [
    "QueryOptions",
    "ResourceAPI",
]
