"""Inbound port for the resource facade.

This is the only surface transport adapters talk to. It speaks in
entity-set names, raw query options and decoded JSON payloads, and
answers with ``Outcome`` values that adapters map to their own status
signalling.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from resource_server.domain.value_objects import Outcome


@dataclass(frozen=True)
class QueryOptions:
    """Raw system query options, exactly as received.

    Each attribute holds the unparsed option text, or None when the
    option was not supplied.
    """

    filter: str | None = None
    orderby: str | None = None
    skip: str | None = None
    top: str | None = None
    expand: str | None = None
    select: str | None = None
    count: str | None = None
    apply: str | None = None


class ResourceAPI(Protocol):
    """Abstract operation surface of the resource server."""

    def list(self, entity_set: str, options: QueryOptions) -> Outcome:
        """LIST: entities or aggregate rows matching the query.

        Returns:
            OK with a ``QueryResult``, NOT_FOUND for an unknown entity set,
            INVALID_INPUT for malformed query options.
        """
        ...

    def get_by_key(self, entity_set: str, key: int, options: QueryOptions) -> Outcome:
        """GET_BY_KEY: one entity, honouring $expand and $select.

        Returns:
            OK with an ``EntityView``, or NOT_FOUND.
        """
        ...

    def create(self, entity_set: str, payload: Mapping[str, Any] | None) -> Outcome:
        """CREATE: CREATED with the stored entity, CONFLICT or INVALID_INPUT."""
        ...

    def replace(self, entity_set: str, key: int, payload: Mapping[str, Any] | None) -> Outcome:
        """REPLACE: OK, NOT_FOUND or INVALID_INPUT."""
        ...

    def merge_patch(self, entity_set: str, key: int, payload: Mapping[str, Any] | None) -> Outcome:
        """MERGE_PATCH: OK, NOT_FOUND or INVALID_INPUT."""
        ...

    def delete(self, entity_set: str, key: int) -> Outcome:
        """DELETE: always OK."""
        ...

    def link(self, entity_set: str, key: int, relationship: str, related_key: int) -> Outcome:
        """LINK: OK or INVALID_INPUT."""
        ...

    def link_reference(
        self,
        entity_set: str,
        key: int,
        relationship: str,
        payload: Mapping[str, Any] | None,
    ) -> Outcome:
        """LINK, with the related entity given as an ``@odata.id`` reference."""
        ...

    def stats(self) -> dict[str, Any]:
        """Collection sizes and engine settings."""
        ...
