"""Wire payload decoding.

JSON bodies are validated with pydantic models that use the public
PascalCase property names as aliases and reject unknown properties.
Whether a property was supplied is read from ``model_fields_set``, never
from its value, so an explicit ``null`` and an absent key stay distinct.

Instance annotations (keys starting with ``@``, e.g. ``@odata.context``)
are ignored.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Mapping

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

from resource_server.domain.entities import SCHEMAS, Customer, FieldDef, Order
from resource_server.domain.value_objects import (
    INVALID_ENTITY_ID,
    CustomerChanges,
    EntityId,
    EntityType,
    OrderChanges,
)


class PayloadError(ValueError):
    """A request body could not be decoded."""

    pass


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=False)


class CustomerPayload(_Payload):
    """Customer body for create, replace and patch."""

    id: StrictInt | None = Field(default=None, alias="Id")
    name: StrictStr | None = Field(default=None, alias="Name")
    city: StrictStr | None = Field(default=None, alias="City")


class OrderPayload(_Payload):
    """Order body for create, replace and patch."""

    id: StrictInt | None = Field(default=None, alias="Id")
    order_date: AwareDatetime | None = Field(default=None, alias="OrderDate")
    amount: Decimal | None = Field(default=None, alias="Amount")
    customer_id: StrictInt | None = Field(default=None, alias="CustomerId")


class ReferencePayload(_Payload):
    """Body of a ``$ref`` request."""

    odata_id: StrictStr = Field(alias="@odata.id")


_MODELS: dict[EntityType, type[_Payload]] = {
    EntityType.CUSTOMERS: CustomerPayload,
    EntityType.ORDERS: OrderPayload,
}

_ENTITIES: dict[EntityType, type] = {
    EntityType.CUSTOMERS: Customer,
    EntityType.ORDERS: Order,
}

_CHANGES: dict[EntityType, type] = {
    EntityType.CUSTOMERS: CustomerChanges,
    EntityType.ORDERS: OrderChanges,
}

# Customers(2), or any URL ending in it
_REFERENCE_RE = re.compile(r"(?:^|/)(?P<set>[A-Za-z_][A-Za-z0-9_]*)\((?P<key>-?\d+)\)$")


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "body"
        problems.append(f"{location}: {item['msg']}")
    return "; ".join(problems)


def _field_by_attribute(entity_type: EntityType, name: str) -> FieldDef:
    for f in SCHEMAS[entity_type.value].fields:
        if f.name == name:
            return f
    raise KeyError(name)


def _validate(entity_type: EntityType, payload: Any) -> _Payload:
    if payload is None:
        raise PayloadError("Request body is required")
    if not isinstance(payload, Mapping):
        raise PayloadError("Request body must be a JSON object")

    data = {k: v for k, v in payload.items() if not str(k).startswith("@")}
    try:
        model = _MODELS[entity_type].model_validate(data)
    except ValidationError as e:
        raise PayloadError(_format_validation_error(e)) from e

    for name in model.model_fields_set:
        field_def = _field_by_attribute(entity_type, name)
        if getattr(model, name) is None and not field_def.nullable:
            raise PayloadError(f"{field_def.wire_name} must not be null")
    return model


def _supplied(model: _Payload) -> dict[str, Any]:
    """Attribute name -> value for every supplied non-key property."""
    return {name: getattr(model, name) for name in model.model_fields_set if name != "id"}


def decode_entity(
    entity_type: EntityType,
    payload: Any,
    key: EntityId | None = None,
) -> Customer | Order:
    """Decode a full entity for create or replace.

    Properties missing from the payload take their type defaults. With
    ``key`` given (replace) the payload's own Id is ignored.

    Raises:
        PayloadError: If the body is missing or invalid.
    """
    model = _validate(entity_type, payload)
    if key is not None:
        entity_id = key
    elif model.id is not None:
        entity_id = EntityId(model.id)
    else:
        entity_id = INVALID_ENTITY_ID
    return _ENTITIES[entity_type](id=entity_id, **_supplied(model))


def decode_changes(
    entity_type: EntityType,
    payload: Any,
    key: EntityId,
) -> CustomerChanges | OrderChanges:
    """Decode a merge-patch body into a present-or-absent change set.

    Raises:
        PayloadError: If the body is missing or invalid, or tries to
            change the key.
    """
    model = _validate(entity_type, payload)
    if "id" in model.model_fields_set and model.id != key:
        raise PayloadError(f"Id cannot be changed (key is {key}, payload has {model.id})")
    return _CHANGES[entity_type](**_supplied(model))


def parse_reference(payload: Any) -> tuple[str, EntityId]:
    """Decode an ``{"@odata.id": "Customers(2)"}`` body.

    Returns:
        The referenced entity-set name and key.

    Raises:
        PayloadError: If the body is not a reference.
    """
    if not isinstance(payload, Mapping):
        raise PayloadError("Reference body must be a JSON object with '@odata.id'")
    try:
        reference = ReferencePayload.model_validate(payload)
    except ValidationError as e:
        raise PayloadError(_format_validation_error(e)) from e

    match = _REFERENCE_RE.search(reference.odata_id.strip())
    if match is None:
        raise PayloadError(f"Malformed entity reference {reference.odata_id!r}")
    return match.group("set"), EntityId(int(match.group("key")))
