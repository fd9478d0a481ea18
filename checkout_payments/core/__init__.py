"""Core checkout logic: stores, transaction coordination and the payment lifecycle."""
from .inventory import ProductService
from .lifecycle import (
    VALID_STATUS_TRANSITIONS,
    PaymentLifecycleEngine,
    is_valid_transition,
    valid_next_statuses,
)
from .stores import InventoryStore, PaymentStore
from .transactions import TransactionContext, TransactionCoordinator, TransactionFailed

__all__ = [
    "InventoryStore",
    "PaymentLifecycleEngine",
    "PaymentStore",
    "ProductService",
    "TransactionContext",
    "TransactionCoordinator",
    "TransactionFailed",
    "VALID_STATUS_TRANSITIONS",
    "is_valid_transition",
    "valid_next_statuses",
]
