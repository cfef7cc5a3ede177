"""Present-or-absent field sets used by merge-patch.

A merge-patch payload only carries the fields the client wants to change.
``UNSET`` marks an absent field, so that ``None`` remains a legitimate
value (e.g. clearing an order's customer reference).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Final, TypeVar

from resource_server.domain.value_objects.identifiers import EntityId


class _Unset:
    """Marker type for a field that was not supplied."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Final = _Unset()

# Customer or Order
E = TypeVar("E")


@dataclass(frozen=True)
class _Changes:
    """Shared behaviour of the per-entity change sets."""

    def present_fields(self) -> dict[str, Any]:
        """Return attribute name -> new value for every supplied field."""
        return {
            f.name: getattr(self, f.name)
            for f in dataclasses.fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.present_fields()

    def apply_to(self, entity: E) -> E:
        """Return a new version of entity with the supplied fields replaced."""
        return dataclasses.replace(entity, **self.present_fields())


@dataclass(frozen=True)
class CustomerChanges(_Changes):
    name: str | None | _Unset = UNSET
    city: str | None | _Unset = UNSET


@dataclass(frozen=True)
class OrderChanges(_Changes):
    order_date: datetime | _Unset = UNSET
    amount: Decimal | _Unset = UNSET
    customer_id: EntityId | None | _Unset = UNSET
