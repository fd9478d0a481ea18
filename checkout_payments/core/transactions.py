"""
Transaction coordinator.

Runs one unit of work against both stores inside a single database
transaction. Callers never see begin/commit/rollback.
"""
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from checkout_payments.core.stores import InventoryStore, PaymentStore
from checkout_payments.database.connection import Database
from checkout_payments.monitoring.metrics import metrics
from checkout_payments.results import Failure

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class TransactionFailed(Exception):
    """Raised when a unit of work errors; every write it made was rolled back."""

    def __init__(self, cause: BaseException):
        super().__init__(
            f"Database transaction failed: {cause}. All changes have been rolled back."
        )
        self.cause = cause


@dataclass(frozen=True)
class TransactionContext:
    """Stores bound to the coordinator's session for one unit of work."""

    session: AsyncSession
    inventory: InventoryStore
    payments: PaymentStore


class TransactionCoordinator:
    """
    Executes units of work atomically.

    A unit of work is an async callable taking a ``TransactionContext``.
    It commits when the work returns normally, rolls back and returns the
    value unchanged when the work returns a ``Failure``, and rolls back and
    raises ``TransactionFailed`` when the work raises. Nesting is not
    supported: one logical operation is one transaction.
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    async def run(self, work: Callable[[TransactionContext], Awaitable[T]]) -> T:
        """
        Run ``work`` in a new transaction.

        Args:
            work: Unit of work

        Returns:
            T: The unit of work's result

        Raises:
            TransactionFailed: If the unit of work (or the commit) raised
        """
        async with self.database.session_factory() as session:
            try:
                await session.begin()
                ctx = TransactionContext(
                    session=session,
                    inventory=InventoryStore(session),
                    payments=PaymentStore(session),
                )
                result = await work(ctx)

                if isinstance(result, Failure):
                    await session.rollback()
                    metrics.record_rollback("failure")
                    return result

                await session.commit()
                return result

            except Exception as e:
                await session.rollback()
                metrics.record_rollback("error")
                logger.warning(
                    "transaction_rolled_back",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise TransactionFailed(e) from e
