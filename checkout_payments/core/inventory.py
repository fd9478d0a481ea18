"""Product catalogue management."""
import uuid
from decimal import Decimal
from typing import Any, List, Optional

import structlog

from checkout_payments import domain
from checkout_payments.core.transactions import (
    TransactionContext,
    TransactionCoordinator,
    TransactionFailed,
)
from checkout_payments.core.stores import InventoryStore
from checkout_payments.database import models as db
from checkout_payments.database.connection import Database
from checkout_payments.database.errors import translate_storage_error
from checkout_payments.results import Failure, FailureKind, Result, Success

logger = structlog.get_logger(__name__)

UPDATABLE_FIELDS = ("name", "description", "price", "stock_level")
NULLABLE_FIELDS = ("description",)


def _not_found(product_id: uuid.UUID) -> Failure:
    return Failure(
        FailureKind.NOT_FOUND,
        f"Product with ID '{product_id}' not found. Please verify the product ID and try again.",
    )


def _invalid_stock(stock_level: int) -> Failure:
    return Failure(
        FailureKind.INVALID_INPUT,
        f"Invalid stock level: {stock_level}. "
        "Stock level must be a non-negative number (0 or greater).",
    )


class ProductService:
    """
    Create, read, update and delete products.

    ``set_stock`` and ``update(stock_level=...)`` overwrite the counter and
    are meant for catalogue administration only; payment flows change stock
    through the lifecycle engine's guarded increment/decrement.
    """

    def __init__(
        self,
        database: Database,
        coordinator: Optional[TransactionCoordinator] = None,
    ) -> None:
        self.database = database
        self.coordinator = coordinator or TransactionCoordinator(database)

    async def list_products(self) -> List[domain.Product]:
        async with self.database.session() as session:
            products = await InventoryStore(session).list_all()
            return [domain.Product.model_validate(p) for p in products]

    async def get_product(self, product_id: uuid.UUID) -> Optional[domain.Product]:
        async with self.database.session() as session:
            product = await InventoryStore(session).get(product_id)
            return domain.Product.model_validate(product) if product else None

    async def create_product(
        self,
        name: str,
        price: Decimal,
        stock_level: int,
        description: Optional[str] = None,
    ) -> Result[domain.Product]:
        if stock_level < 0:
            return _invalid_stock(stock_level)

        async def work(ctx: TransactionContext) -> Result[domain.Product]:
            product = await ctx.inventory.add(
                db.Product(
                    name=name,
                    description=description,
                    price=price,
                    stock_level=stock_level,
                )
            )
            return Success(domain.Product.model_validate(product))

        result = await self._run("create_product", work)
        if isinstance(result, Success):
            logger.info("product_created", product_id=str(result.value.id), name=name)
        return result

    async def update_product(
        self, product_id: uuid.UUID, **fields: Any
    ) -> Result[domain.Product]:
        """
        Partially update a product.

        Args:
            product_id: Product ID
            **fields: Any of name, description, price, stock_level. An explicit
                None clears description and is rejected for the others.

        Returns:
            Result[Product]: The updated product, INVALID_INPUT when no valid
            field is given, or NOT_FOUND
        """
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        if not changes:
            return Failure(
                FailureKind.INVALID_INPUT,
                "No valid fields provided for update. Please provide at least one of: "
                "name, description, price, or stock_level.",
            )
        missing = sorted(k for k, v in changes.items() if v is None and k not in NULLABLE_FIELDS)
        if missing:
            return Failure(
                FailureKind.INVALID_INPUT,
                f"Fields cannot be null: {', '.join(missing)}. "
                "Only description may be cleared.",
                {"fields": missing},
            )
        if changes.get("stock_level", 0) < 0:
            return _invalid_stock(changes["stock_level"])

        async def work(ctx: TransactionContext) -> Result[domain.Product]:
            product = await ctx.inventory.lock_for_update(product_id)
            if product is None:
                return _not_found(product_id)
            for key, value in changes.items():
                setattr(product, key, value)
            await ctx.session.flush()
            return Success(domain.Product.model_validate(product))

        result = await self._run("update_product", work)
        if isinstance(result, Success):
            logger.info("product_updated", product_id=str(product_id), fields=sorted(changes))
        return result

    async def set_stock(self, product_id: uuid.UUID, stock_level: int) -> Result[domain.Product]:
        """Overwrite the stock level; rejects negative values."""
        if stock_level < 0:
            return _invalid_stock(stock_level)
        return await self.update_product(product_id, stock_level=stock_level)

    async def delete_product(self, product_id: uuid.UUID) -> Result[None]:
        """Delete a product. Payments referencing it are deleted as well."""

        async def work(ctx: TransactionContext) -> Result[None]:
            if not await ctx.inventory.delete(product_id):
                return _not_found(product_id)
            return Success(None)

        result = await self._run("delete_product", work)
        if isinstance(result, Success):
            logger.warning("product_deleted", product_id=str(product_id), cascade="payments")
        return result

    async def _run(self, operation: str, work: Any) -> Result:
        try:
            return await self.coordinator.run(work)
        except TransactionFailed as e:
            failure = translate_storage_error(e.cause)
            logger.error(
                "product_operation_failed",
                operation=operation,
                error=str(e),
                kind=failure.kind.value,
            )
            return failure
