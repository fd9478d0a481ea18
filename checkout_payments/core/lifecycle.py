"""
Payment lifecycle engine.

Sole writer of payment status and sole orchestrator of stock changes tied to
payments. Every mutating operation runs as one coordinated transaction:

create:         idempotency read -> lock product -> check stock ->
                guarded decrement -> insert payment
update_status:  lock payment -> validate transition -> update
cancel:         lock payment -> require 'initialized' -> restore stock -> delete

Status flow: initialized -> user_set -> payment_processing -> complete.
'complete' is terminal. There is no cancelled state; cancelling deletes the
payment, and only an 'initialized' payment can be cancelled.
"""
import time
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import structlog

from checkout_payments import domain
from checkout_payments.core.stores import PaymentStore
from checkout_payments.core.transactions import (
    TransactionContext,
    TransactionCoordinator,
    TransactionFailed,
)
from checkout_payments.database import models as db
from checkout_payments.database.connection import Database
from checkout_payments.database.errors import is_unique_violation, translate_storage_error
from checkout_payments.domain import PaymentMethod, PaymentStatus
from checkout_payments.monitoring.metrics import metrics
from checkout_payments.results import Failure, FailureKind, Result, Success

logger = structlog.get_logger(__name__)

VALID_STATUS_TRANSITIONS: Dict[PaymentStatus, Tuple[PaymentStatus, ...]] = {
    PaymentStatus.INITIALIZED: (PaymentStatus.USER_SET,),
    PaymentStatus.USER_SET: (PaymentStatus.PAYMENT_PROCESSING,),
    PaymentStatus.PAYMENT_PROCESSING: (PaymentStatus.COMPLETE,),
    PaymentStatus.COMPLETE: (),
}

CANCELABLE_STATUS = PaymentStatus.INITIALIZED


def valid_next_statuses(status: PaymentStatus) -> List[PaymentStatus]:
    """Statuses a payment in ``status`` may move to."""
    return list(VALID_STATUS_TRANSITIONS[status])


def is_valid_transition(current: PaymentStatus, new: PaymentStatus) -> bool:
    return new in VALID_STATUS_TRANSITIONS[current]


def _with_product(payment: db.Payment, product: db.Product) -> domain.PaymentWithProduct:
    return domain.PaymentWithProduct(
        **domain.Payment.model_validate(payment).model_dump(),
        product=domain.Product.model_validate(product),
    )


class PaymentLifecycleEngine:
    """
    Payment state machine with stock reservation.

    Handles creation under stock contention, status transitions and
    cancellation. Business outcomes come back as ``Success``/``Failure``;
    only faults are logged as errors.
    """

    def __init__(
        self,
        database: Database,
        coordinator: Optional[TransactionCoordinator] = None,
    ):
        """
        Initialize the lifecycle engine.

        Args:
            database: Database handle used for reads
            coordinator: Optional transaction coordinator (built from
                ``database`` if not provided)
        """
        self.database = database
        self.coordinator = coordinator or TransactionCoordinator(database)

    async def create_payment(
        self,
        product_id: uuid.UUID,
        payment_method: PaymentMethod,
        user_id: str,
        idempotency_key: str,
    ) -> Result[domain.Payment]:
        """
        Create a payment and reserve one unit of the product's stock.

        Repeating the call with the same idempotency key returns the payment
        created by the first call and changes nothing.

        Args:
            product_id: Product being purchased
            payment_method: Payment method
            user_id: Caller-supplied user identifier
            idempotency_key: Caller-supplied token, unique per logical request

        Returns:
            Result[Payment]: The created or pre-existing payment, or a failure
            of kind NOT_FOUND, OUT_OF_STOCK or STOCK_DEPLETED
        """
        started_at = time.perf_counter()
        log = logger.bind(product_id=str(product_id), idempotency_key=idempotency_key)

        async def work(ctx: TransactionContext) -> Result[domain.Payment]:
            existing = await ctx.payments.get_by_idempotency_key(idempotency_key)
            if existing is not None:
                metrics.record_idempotent_replay("read")
                log.info("payment_idempotent_return", payment_id=str(existing.id))
                return Success(domain.Payment.model_validate(existing))

            # Concurrent creators for this product queue up here.
            product = await ctx.inventory.lock_for_update(product_id)
            if product is None:
                return Failure(
                    FailureKind.NOT_FOUND,
                    f"Product with ID '{product_id}' not found. "
                    "Please verify the product ID and try again.",
                )

            if product.stock_level <= 0:
                metrics.record_stock_conflict(FailureKind.OUT_OF_STOCK.value)
                return Failure(
                    FailureKind.OUT_OF_STOCK,
                    f"Product '{product.name}' is currently out of stock "
                    f"(available: {product.stock_level}). "
                    "Please try again later or choose a different product.",
                    {"product_id": str(product_id), "stock_level": product.stock_level},
                )

            if not await ctx.inventory.decrement_stock(product_id):
                metrics.record_stock_conflict(FailureKind.STOCK_DEPLETED.value)
                return Failure(
                    FailureKind.STOCK_DEPLETED,
                    f"Product '{product.name}' is no longer available. "
                    "Stock may have been depleted by another transaction. Please try again.",
                    {"product_id": str(product_id)},
                )

            payment = await ctx.payments.add(
                db.Payment(
                    amount=product.price,
                    status=PaymentStatus.INITIALIZED.value,
                    product_id=product_id,
                    payment_method=payment_method.value,
                    user_id=user_id,
                    idempotency_key=idempotency_key,
                )
            )
            return Success(domain.Payment.model_validate(payment))

        try:
            result = await self.coordinator.run(work)
        except TransactionFailed as e:
            if is_unique_violation(e.cause, "idempotency_key"):
                # Another request with this key committed between our read and insert.
                result = await self._replay_by_idempotency_key(idempotency_key)
            else:
                result = self._fault("create_payment", e, log)

        if isinstance(result, Success):
            log.info("payment_created", payment_id=str(result.value.id))
        else:
            log.info("payment_creation_rejected", kind=result.kind.value)
        self._record("create_payment", result, started_at)
        return result

    async def _replay_by_idempotency_key(self, idempotency_key: str) -> Result[domain.Payment]:
        async with self.database.session() as session:
            existing = await PaymentStore(session).get_by_idempotency_key(idempotency_key)
            if existing is None:
                return Failure(
                    FailureKind.DUPLICATE_IDEMPOTENCY_KEY,
                    "A payment with this idempotency key is already being processed. "
                    "Please retry the request.",
                )
            snapshot = domain.Payment.model_validate(existing)

        metrics.record_idempotent_replay("unique_violation")
        logger.info(
            "payment_idempotent_return_after_conflict",
            payment_id=str(snapshot.id),
            idempotency_key=idempotency_key,
        )
        return Success(snapshot)

    async def update_payment_status(
        self, payment_id: uuid.UUID, new_status: PaymentStatus
    ) -> Result[domain.Payment]:
        """
        Move a payment to ``new_status`` if the transition table allows it.

        Returns:
            Result[Payment]: The updated payment, or a failure of kind
            NOT_FOUND or INVALID_TRANSITION (with the valid next states)
        """
        started_at = time.perf_counter()
        log = logger.bind(payment_id=str(payment_id), requested_status=new_status.value)

        async def work(ctx: TransactionContext) -> Result[domain.Payment]:
            payment = await ctx.payments.get(payment_id, for_update=True)
            if payment is None:
                return Failure(
                    FailureKind.NOT_FOUND,
                    f"Payment with ID '{payment_id}' not found. "
                    "Please verify the payment ID and try again.",
                )

            current = PaymentStatus(payment.status)
            if not is_valid_transition(current, new_status):
                allowed = [status.value for status in valid_next_statuses(current)]
                listing = ", ".join(allowed) if allowed else f"none ('{current.value}' is terminal)"
                return Failure(
                    FailureKind.INVALID_TRANSITION,
                    f"Invalid payment status transition from '{current.value}' to "
                    f"'{new_status.value}'. Valid transitions from '{current.value}' are: "
                    f"{listing}. Please follow the correct payment flow.",
                    {
                        "current_status": current.value,
                        "requested_status": new_status.value,
                        "valid_transitions": allowed,
                    },
                )

            await ctx.payments.set_status(payment, new_status)
            metrics.record_status_transition(current.value, new_status.value)
            log.info("payment_status_updated", from_status=current.value)
            return Success(domain.Payment.model_validate(payment))

        try:
            result = await self.coordinator.run(work)
        except TransactionFailed as e:
            result = self._fault("update_payment_status", e, log)

        self._record("update_payment_status", result, started_at)
        return result

    async def cancel_payment(self, payment_id: uuid.UUID) -> Result[domain.Payment]:
        """
        Cancel an 'initialized' payment: restore its stock unit and delete it.

        Returns:
            Result[Payment]: The payment as it was just before deletion, or a
            failure of kind NOT_FOUND or NOT_CANCELABLE
        """
        started_at = time.perf_counter()
        log = logger.bind(payment_id=str(payment_id))

        async def work(ctx: TransactionContext) -> Result[domain.Payment]:
            payment = await ctx.payments.get(payment_id, for_update=True)
            if payment is None:
                return Failure(
                    FailureKind.NOT_FOUND,
                    f"Payment with ID '{payment_id}' not found. "
                    "Please verify the payment ID and try again.",
                )

            if payment.status != CANCELABLE_STATUS.value:
                return Failure(
                    FailureKind.NOT_CANCELABLE,
                    f"Payment with ID '{payment_id}' cannot be cancelled. Only payments "
                    f"with status '{CANCELABLE_STATUS.value}' can be cancelled. "
                    f"Current status: '{payment.status}'.",
                    {"current_status": payment.status},
                )

            snapshot = domain.Payment.model_validate(payment)
            await ctx.inventory.increment_stock(payment.product_id)
            await ctx.payments.delete(payment)
            metrics.record_stock_restored()
            log.info("payment_cancelled", product_id=str(snapshot.product_id))
            return Success(snapshot)

        try:
            result = await self.coordinator.run(work)
        except TransactionFailed as e:
            result = self._fault("cancel_payment", e, log)

        self._record("cancel_payment", result, started_at)
        return result

    async def get_payment(self, payment_id: uuid.UUID) -> Optional[domain.PaymentWithProduct]:
        """Get a payment with its product snapshot, or None."""
        async with self.database.session() as session:
            row = await PaymentStore(session).get_with_product(payment_id)
            if row is None:
                return None
            return _with_product(*row)

    async def list_payments(
        self, status: Optional[PaymentStatus] = None
    ) -> List[domain.PaymentWithProduct]:
        """List payments, most recent first, optionally filtered by status."""
        async with self.database.session() as session:
            rows = await PaymentStore(session).list_with_products(status)
            return [_with_product(payment, product) for payment, product in rows]

    async def total_completed_amount(self) -> Decimal:
        """Sum of amounts over completed payments (zero when there are none)."""
        async with self.database.session() as session:
            return await PaymentStore(session).total_completed()

    @staticmethod
    def _fault(operation: str, error: TransactionFailed, log: Any) -> Failure:
        failure = translate_storage_error(error.cause)
        log.error(
            "payment_operation_failed",
            operation=operation,
            error=str(error),
            error_type=type(error.cause).__name__,
            kind=failure.kind.value,
        )
        return failure

    @staticmethod
    def _record(operation: str, result: Result, started_at: float) -> None:
        outcome = "success" if isinstance(result, Success) else result.kind.value
        metrics.record_payment_operation(operation, outcome, started_at)
