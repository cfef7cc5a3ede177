"""Entity schema metadata.

Schemas describe the public (wire) shape of each entity type: scalar
fields with their types and navigation properties that link entity types.
The query parser binds property names against a schema, and serializers
use it to flatten entities into records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


class FieldType(Enum):
    """Scalar field types."""

    INTEGER = "integer"
    STRING = "string"
    DECIMAL = "decimal"
    DATETIME = "datetime"

    def default(self) -> Any:
        """Value a field is reset to by full replacement."""
        return _DEFAULTS[self]


# Minimum instant, offset-aware so it compares against any stored timestamp
MIN_DATETIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_DEFAULTS: dict[FieldType, Any] = {
    FieldType.INTEGER: None,
    FieldType.STRING: None,
    FieldType.DECIMAL: Decimal(0),
    FieldType.DATETIME: MIN_DATETIME,
}


@dataclass(frozen=True)
class FieldDef:
    """A scalar field.

    Attributes:
        name: Python attribute name on the entity
        wire_name: Public property name
        field_type: Scalar type
        nullable: Whether null is a legal value
        key: Whether this is the entity key
    """

    name: str
    wire_name: str
    field_type: FieldType
    nullable: bool = True
    key: bool = False


@dataclass(frozen=True)
class NavigationDef:
    """A relationship to another entity set.

    Single-valued navigations are backed by a foreign key attribute on the
    owning entity. Collection navigations are computed from the other
    side's foreign key and are never stored.
    """

    wire_name: str
    target: str  # entity-set name
    collection: bool
    foreign_key: str | None = None  # attribute name on the owner, single-valued only


@dataclass(frozen=True)
class EntitySchema:
    """Public shape of an entity type."""

    entity_set: str
    fields: tuple[FieldDef, ...]
    navigations: tuple[NavigationDef, ...] = field(default_factory=tuple)

    @property
    def key_field(self) -> FieldDef:
        for f in self.fields:
            if f.key:
                return f
        raise LookupError(f"{self.entity_set} has no key field")

    def field(self, wire_name: str) -> FieldDef | None:
        """Look up a scalar field by wire name."""
        for f in self.fields:
            if f.wire_name == wire_name:
                return f
        return None

    def navigation(self, wire_name: str) -> NavigationDef | None:
        """Look up a navigation property by wire name."""
        for nav in self.navigations:
            if nav.wire_name == wire_name:
                return nav
        return None

    def to_record(self, entity: Any) -> dict[str, Any]:
        """Flatten an entity into wire name -> value, navigations omitted."""
        return {f.wire_name: getattr(entity, f.name) for f in self.fields}
