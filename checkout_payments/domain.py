"""
Domain types shared by the stores, the lifecycle engine and the API.

Snapshots are immutable pydantic models built from ORM rows while the
owning session is still open, so callers never touch a live ORM object.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class PaymentStatus(str, Enum):
    """Payment status, in lifecycle order."""

    INITIALIZED = "initialized"
    USER_SET = "user_set"
    PAYMENT_PROCESSING = "payment_processing"
    COMPLETE = "complete"


class PaymentMethod(str, Enum):
    """Accepted payment methods."""

    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"


class Product(BaseModel):
    """Product snapshot."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    price: Decimal
    stock_level: int
    created_at: datetime
    updated_at: datetime


class Payment(BaseModel):
    """Payment snapshot."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: uuid.UUID
    amount: Decimal
    status: PaymentStatus
    product_id: uuid.UUID
    payment_method: PaymentMethod
    user_id: str
    idempotency_key: str
    created_at: datetime
    updated_at: datetime


class PaymentWithProduct(Payment):
    """Payment snapshot enriched with the product it references."""

    product: Product
