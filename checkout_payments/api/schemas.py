"""
Pydantic schemas for API request/response models.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from checkout_payments.domain import PaymentMethod, PaymentStatus


class CreateProductRequest(BaseModel):
    """Request schema for creating a product."""

    name: str = Field(..., min_length=1, max_length=255, description="Product name")
    description: Optional[str] = Field(
        default=None, max_length=1000, description="Product description"
    )
    price: Decimal = Field(
        ..., gt=0, max_digits=10, decimal_places=2, description="Product price"
    )
    stock_level: int = Field(..., ge=0, description="Available stock level")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Laptop Pro",
                    "description": "High-performance laptop for professionals",
                    "price": "1299.99",
                    "stock_level": 50,
                }
            ]
        }
    }


class UpdateProductRequest(BaseModel):
    """Request schema for a partial product update."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    price: Optional[Decimal] = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    stock_level: Optional[int] = Field(default=None, ge=0)


class UpdateStockRequest(BaseModel):
    """Request schema for overwriting a product's stock level."""

    stock_level: int = Field(..., ge=0, description="New stock level (0 or greater)")


class ProductResponse(BaseModel):
    """Response schema for a product."""

    id: UUID = Field(..., description="Product ID")
    name: str = Field(..., description="Product name")
    description: Optional[str] = Field(default=None, description="Product description")
    price: Decimal = Field(..., description="Product price")
    stock_level: int = Field(..., description="Available stock level")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class CreatePaymentRequest(BaseModel):
    """Request schema for creating a payment."""

    product_id: UUID = Field(..., description="Product ID to purchase")
    payment_method: PaymentMethod = Field(..., description="Payment method")
    user_id: str = Field(..., min_length=1, max_length=255, description="User identifier")
    idempotency_key: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Unique key to prevent duplicate payments",
    )

    @field_validator("user_id", "idempotency_key")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject whitespace-only identifiers."""
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_id": "123e4567-e89b-12d3-a456-426614174000",
                    "payment_method": "credit_card",
                    "user_id": "user123",
                    "idempotency_key": "payment-123-abc",
                }
            ]
        }
    }


class UpdatePaymentStatusRequest(BaseModel):
    """Request schema for a payment status change."""

    status: PaymentStatus = Field(..., description="New payment status")


class PaymentResponse(BaseModel):
    """Response schema for a payment."""

    id: UUID = Field(..., description="Payment ID")
    amount: Decimal = Field(..., description="Amount, snapshotted from the product price")
    status: PaymentStatus = Field(..., description="Payment status")
    product_id: UUID = Field(..., description="Associated product ID")
    payment_method: PaymentMethod = Field(..., description="Payment method")
    user_id: str = Field(..., description="User identifier")
    idempotency_key: str = Field(..., description="Idempotency key")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class PaymentWithProductResponse(PaymentResponse):
    """Response schema for a payment with its product."""

    product: ProductResponse = Field(..., description="Referenced product")


class TotalCompletedResponse(BaseModel):
    """Response schema for the completed payments total."""

    total: Decimal = Field(..., description="Sum of completed payment amounts")


class ErrorDetail(BaseModel):
    """Error body returned for rejected operations."""

    error: str = Field(..., description="Stable failure classification")
    message: str = Field(..., description="Human-readable explanation")


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")
    version: Optional[str] = Field(default=None, description="Service version")
    timestamp: Optional[str] = Field(default=None, description="Check time (ISO 8601)")


class ServiceInfoResponse(BaseModel):
    """Response schema for the root endpoint."""

    service: str
    version: str
    environment: str
    docs: str
    health: str
    endpoints: List[str]
