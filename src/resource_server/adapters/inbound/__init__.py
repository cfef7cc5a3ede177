"""Inbound adapters for the resource server.

Inbound adapters handle incoming requests and convert them to
internal domain operations.

Exports:
    Query parser:
        - QueryParser: Converts system query options into a QuerySpec
        - QueryParseError: Exception for malformed query options

The REST API lives in ``resource_server.adapters.inbound.rest_api`` and
is imported from there, since it depends on the application layer.
"""

from resource_server.adapters.inbound.query_parser import (
    QueryParseError,
    QueryParser,
    tokenize,
)

__all__ = [
    "QueryParser",
    "QueryParseError",
    "tokenize",
]
