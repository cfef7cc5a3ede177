"""Inbound ports - what the resource server offers to transport adapters."""

from resource_server.ports.inbound.resource_api import QueryOptions, ResourceAPI

__all__ = [
    "QueryOptions",
    "ResourceAPI",
]
