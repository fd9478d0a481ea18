"""
Session-bound stores for products and payments.

Both stores operate on a session owned by the caller; they never begin,
commit or roll back. Row locks taken through ``lock_for_update`` /
``for_update=True`` are held until the owning transaction ends.
"""
import uuid
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from checkout_payments.database.models import Payment, Product, utcnow
from checkout_payments.domain import PaymentStatus


class InventoryStore:
    """Products table access, including the atomic stock counter operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, product_id: uuid.UUID) -> Optional[Product]:
        return await self.session.get(Product, product_id)

    async def lock_for_update(self, product_id: uuid.UUID) -> Optional[Product]:
        """
        Fetch a product while holding an exclusive row lock.

        Concurrent callers locking the same product wait here until the
        holder's transaction ends, then read the committed row.

        Args:
            product_id: Product ID

        Returns:
            Optional[Product]: The locked product or None if it does not exist
        """
        stmt = (
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def decrement_stock(self, product_id: uuid.UUID) -> bool:
        """
        Take one unit of stock, guarded by ``stock_level > 0``.

        Returns:
            bool: False if no row was updated (stock already zero or product gone)
        """
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock_level > 0)
            .values(stock_level=Product.stock_level - 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def increment_stock(self, product_id: uuid.UUID) -> bool:
        """Return one unit of stock. Returns False if the product is gone."""
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock_level=Product.stock_level + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def list_all(self) -> Sequence[Product]:
        stmt = select(Product).order_by(Product.created_at.desc())
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def add(self, product: Product) -> Product:
        self.session.add(product)
        await self.session.flush()
        return product

    async def delete(self, product_id: uuid.UUID) -> bool:
        """Delete a product; its payments go with it (ON DELETE CASCADE)."""
        result = await self.session.execute(
            delete(Product)
            .where(Product.id == product_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class PaymentStore:
    """Payments table access."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, payment_id: uuid.UUID, for_update: bool = False) -> Optional[Payment]:
        """
        Fetch a payment by ID.

        Args:
            payment_id: Payment ID
            for_update: Hold an exclusive row lock until the transaction ends

        Returns:
            Optional[Payment]: The payment or None if not found
        """
        stmt = select(Payment).where(Payment.id == payment_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_idempotency_key(self, idempotency_key: str) -> Optional[Payment]:
        stmt = select(Payment).where(Payment.idempotency_key == idempotency_key)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_with_product(
        self, payment_id: uuid.UUID
    ) -> Optional[tuple[Payment, Product]]:
        stmt = (
            select(Payment, Product)
            .join(Product, Payment.product_id == Product.id)
            .where(Payment.id == payment_id)
        )
        row = (await self.session.execute(stmt)).one_or_none()
        if row is None:
            return None
        return row[0], row[1]

    async def list_with_products(
        self, status: Optional[PaymentStatus] = None
    ) -> list[tuple[Payment, Product]]:
        """List payments joined with their product, most recent first."""
        stmt = select(Payment, Product).join(Product, Payment.product_id == Product.id)
        if status is not None:
            stmt = stmt.where(Payment.status == status.value)
        stmt = stmt.order_by(Payment.created_at.desc())
        rows = (await self.session.execute(stmt)).all()
        return [(row[0], row[1]) for row in rows]

    async def add(self, payment: Payment) -> Payment:
        self.session.add(payment)
        await self.session.flush()
        return payment

    async def set_status(self, payment: Payment, status: PaymentStatus) -> Payment:
        payment.status = status.value
        await self.session.flush()
        return payment

    async def delete(self, payment: Payment) -> None:
        await self.session.delete(payment)
        await self.session.flush()

    async def total_completed(self) -> Decimal:
        """Sum of ``amount`` over completed payments; zero when there are none."""
        stmt = select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.status == PaymentStatus.COMPLETE.value
        )
        total = await self.session.scalar(stmt)
        return Decimal(str(total or 0)).quantize(Decimal("0.01"))
