"""
Tagged results for business outcomes.

Expected outcomes such as "out of stock" are returned as ``Failure`` values
rather than raised. Exceptions are reserved for faults (lost connections,
bugs), which the transaction coordinator rolls back and wraps.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Mapping, TypeVar, Union

T = TypeVar("T")


class FailureKind(str, Enum):
    """Stable failure classification exposed to clients."""

    NOT_FOUND = "not_found"
    OUT_OF_STOCK = "out_of_stock"
    STOCK_DEPLETED = "stock_depleted"
    INVALID_TRANSITION = "invalid_transition"
    NOT_CANCELABLE = "not_cancelable"
    DUPLICATE_IDEMPOTENCY_KEY = "duplicate_idempotency_key"
    INVALID_INPUT = "invalid_input"
    TRANSACTION_FAILED = "transaction_failed"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Success(Generic[T]):
    """Successful outcome carrying its value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """Failed outcome: a classification plus a human-readable explanation."""

    kind: FailureKind
    message: str
    details: Mapping[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return False


Result = Union[Success[T], Failure]
