"""Typed operation outcomes.

Every engine and facade operation returns an ``Outcome`` instead of
raising for expected conditions. Transport adapters map ``OutcomeKind``
to their own status signalling.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class OutcomeKind(Enum):
    """Result categories shared by all operations."""

    OK = "ok"
    CREATED = "created"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_INPUT = "invalid_input"

    @property
    def is_success(self) -> bool:
        return self in (OutcomeKind.OK, OutcomeKind.CREATED)


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Success value or failure kind of an operation."""

    kind: OutcomeKind
    value: T | None = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.kind.is_success

    @classmethod
    def ok(cls, value: Any = None) -> Outcome[Any]:
        return cls(OutcomeKind.OK, value)

    @classmethod
    def created(cls, value: Any) -> Outcome[Any]:
        return cls(OutcomeKind.CREATED, value)

    @classmethod
    def not_found(cls, message: str) -> Outcome[Any]:
        return cls(OutcomeKind.NOT_FOUND, message=message)

    @classmethod
    def conflict(cls, message: str) -> Outcome[Any]:
        return cls(OutcomeKind.CONFLICT, message=message)

    @classmethod
    def invalid(cls, message: str) -> Outcome[Any]:
        return cls(OutcomeKind.INVALID_INPUT, message=message)


class StoreCorruptionError(RuntimeError):
    """An internal store invariant no longer holds.

    This is the only condition the engine treats as fatal.
    """
