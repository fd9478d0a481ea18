"""SQLAlchemy database models for the checkout inventory and payments."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from checkout_payments.domain import PaymentMethod, PaymentStatus


def utcnow() -> datetime:
    """Timezone-aware current time used for row timestamps."""
    return datetime.now(timezone.utc)


def _in_clause(values: list[str]) -> str:
    return ", ".join(f"'{value}'" for value in values)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Product(Base):
    """
    Products table.

    Owns the stock counter. The lifecycle engine only ever changes
    ``stock_level`` through guarded increment/decrement statements.
    """

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    stock_level: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="non_negative_price"),
        CheckConstraint("stock_level >= 0", name="non_negative_stock"),
        Index("idx_products_name", "name"),
    )

    def __repr__(self) -> str:
        """String representation of Product."""
        return f"<Product(id={self.id}, name={self.name!r}, stock_level={self.stock_level})>"


class Payment(Base):
    """
    Payments table.

    ``idempotency_key`` carries a unique constraint as the storage-level
    backstop for the lifecycle engine's idempotency read. Payments are
    deleted together with their product (``ON DELETE CASCADE``).
    """

    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="non_negative_amount"),
        CheckConstraint(
            f"status IN ({_in_clause([s.value for s in PaymentStatus])})",
            name="valid_status",
        ),
        CheckConstraint(
            f"payment_method IN ({_in_clause([m.value for m in PaymentMethod])})",
            name="valid_payment_method",
        ),
        Index("idx_payments_status", "status"),
        Index("idx_payments_user_id", "user_id"),
        Index("idx_payments_product_id", "product_id"),
        Index("idx_payments_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation of Payment."""
        return (
            f"<Payment(id={self.id}, product_id={self.product_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
