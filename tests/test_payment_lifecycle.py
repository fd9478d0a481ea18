"""
Unit tests for the payment lifecycle engine.
"""
import asyncio
import uuid
from decimal import Decimal

import pytest

from checkout_payments.core import (
    PaymentLifecycleEngine,
    ProductService,
    is_valid_transition,
    valid_next_statuses,
)
from checkout_payments.core.stores import PaymentStore
from checkout_payments.database import Database
from checkout_payments.domain import PaymentMethod, PaymentStatus
from checkout_payments.results import Failure, FailureKind, Success


async def _create(engine: PaymentLifecycleEngine, product_id: uuid.UUID, key: str = None):
    return await engine.create_payment(
        product_id=product_id,
        payment_method=PaymentMethod.CREDIT_CARD,
        user_id="user123",
        idempotency_key=key or f"key-{uuid.uuid4()}",
    )


async def _advance(engine: PaymentLifecycleEngine, payment_id: uuid.UUID, *statuses) -> None:
    for status in statuses:
        result = await engine.update_payment_status(payment_id, status)
        assert isinstance(result, Success), result


class TestTransitionTable:
    """The payment state machine."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "current,new,expected",
        [
            (PaymentStatus.INITIALIZED, PaymentStatus.USER_SET, True),
            (PaymentStatus.USER_SET, PaymentStatus.PAYMENT_PROCESSING, True),
            (PaymentStatus.PAYMENT_PROCESSING, PaymentStatus.COMPLETE, True),
            (PaymentStatus.INITIALIZED, PaymentStatus.COMPLETE, False),
            (PaymentStatus.INITIALIZED, PaymentStatus.INITIALIZED, False),
            (PaymentStatus.USER_SET, PaymentStatus.INITIALIZED, False),
            (PaymentStatus.COMPLETE, PaymentStatus.INITIALIZED, False),
        ],
    )
    def test_is_valid_transition(self, current, new, expected) -> None:
        assert is_valid_transition(current, new) is expected

    @pytest.mark.unit
    def test_complete_is_terminal(self) -> None:
        assert valid_next_statuses(PaymentStatus.COMPLETE) == []
        assert valid_next_statuses(PaymentStatus.INITIALIZED) == [PaymentStatus.USER_SET]


class TestCreatePayment:
    """Payment creation and stock reservation."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_reserves_stock_and_snapshots_price(
        self, engine: PaymentLifecycleEngine, products: ProductService, make_product
    ) -> None:
        product = await make_product(price="10.00", stock_level=3)

        result = await _create(engine, product.id, "payment-123-abc")

        assert isinstance(result, Success)
        payment = result.value
        assert payment.status == PaymentStatus.INITIALIZED
        assert payment.amount == Decimal("10.00")
        assert payment.product_id == product.id
        assert payment.payment_method == PaymentMethod.CREDIT_CARD
        assert payment.user_id == "user123"
        assert payment.idempotency_key == "payment-123-abc"
        assert (await products.get_product(product.id)).stock_level == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_same_idempotency_key_returns_same_payment(
        self, engine: PaymentLifecycleEngine, products: ProductService, make_product
    ) -> None:
        product = await make_product(stock_level=3)

        first = await _create(engine, product.id, "dup-key")
        second = await _create(engine, product.id, "dup-key")

        assert isinstance(second, Success)
        assert second.value.id == first.value.id
        assert (await products.get_product(product.id)).stock_level == 2
        assert len(await engine.list_payments()) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_idempotent_replay_ignores_other_arguments(
        self, engine: PaymentLifecycleEngine, make_product
    ) -> None:
        product = await make_product(stock_level=3)
        other = await make_product(name="Wireless Mouse", price="29.99")
        first = await _create(engine, product.id, "dup-key")

        second = await engine.create_payment(
            product_id=other.id,
            payment_method=PaymentMethod.PAYPAL,
            user_id="someone-else",
            idempotency_key="dup-key",
        )

        assert second.value.id == first.value.id
        assert second.value.product_id == product.id
        assert second.value.payment_method == PaymentMethod.CREDIT_CARD
        assert second.value.user_id == "user123"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_product(self, engine: PaymentLifecycleEngine) -> None:
        missing = uuid.uuid4()

        result = await _create(engine, missing)

        assert isinstance(result, Failure)
        assert result.kind == FailureKind.NOT_FOUND
        assert str(missing) in result.message

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_out_of_stock(
        self, engine: PaymentLifecycleEngine, products: ProductService, make_product
    ) -> None:
        product = await make_product(name="Gaming Headset", stock_level=0)

        result = await _create(engine, product.id)

        assert result.kind == FailureKind.OUT_OF_STOCK
        assert "Gaming Headset" in result.message
        assert "(available: 0)" in result.message
        assert await engine.list_payments() == []
        assert (await products.get_product(product.id)).stock_level == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_amount_is_not_affected_by_later_price_change(
        self, engine: PaymentLifecycleEngine, products: ProductService, make_product
    ) -> None:
        product = await make_product(price="10.00")
        created = await _create(engine, product.id)

        await products.update_product(product.id, price=Decimal("99.99"))
        fetched = await engine.get_payment(created.value.id)

        assert fetched.amount == Decimal("10.00")
        assert fetched.product.price == Decimal("99.99")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_duplicate_key_at_insert_returns_existing_payment(
        self,
        engine: PaymentLifecycleEngine,
        products: ProductService,
        make_product,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A key that slips past the read is resolved by the unique constraint."""
        product = await make_product(stock_level=5)
        first = await _create(engine, product.id, "raced-key")

        original = PaymentStore.get_by_idempotency_key
        calls = []

        async def miss_once(self, idempotency_key):
            calls.append(idempotency_key)
            if len(calls) == 1:
                return None
            return await original(self, idempotency_key)

        monkeypatch.setattr(PaymentStore, "get_by_idempotency_key", miss_once)

        second = await _create(engine, product.id, "raced-key")

        assert isinstance(second, Success)
        assert second.value.id == first.value.id
        assert len(calls) == 2
        assert (await products.get_product(product.id)).stock_level == 4


class TestUpdatePaymentStatus:
    """Status transitions."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_full_happy_path(self, engine: PaymentLifecycleEngine, make_product) -> None:
        product = await make_product()
        payment = (await _create(engine, product.id)).value

        for status in (
            PaymentStatus.USER_SET,
            PaymentStatus.PAYMENT_PROCESSING,
            PaymentStatus.COMPLETE,
        ):
            result = await engine.update_payment_status(payment.id, status)
            assert isinstance(result, Success)
            assert result.value.status == status

        assert (await engine.get_payment(payment.id)).status == PaymentStatus.COMPLETE

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_skipping_a_state_is_rejected(
        self, engine: PaymentLifecycleEngine, make_product
    ) -> None:
        product = await make_product()
        payment = (await _create(engine, product.id)).value

        result = await engine.update_payment_status(payment.id, PaymentStatus.COMPLETE)

        assert result.kind == FailureKind.INVALID_TRANSITION
        assert "from 'initialized' to 'complete'" in result.message
        assert "user_set" in result.message
        assert result.details["valid_transitions"] == ["user_set"]
        assert (await engine.get_payment(payment.id)).status == PaymentStatus.INITIALIZED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_complete_is_terminal(
        self, engine: PaymentLifecycleEngine, make_product
    ) -> None:
        product = await make_product()
        payment = (await _create(engine, product.id)).value
        await _advance(
            engine,
            payment.id,
            PaymentStatus.USER_SET,
            PaymentStatus.PAYMENT_PROCESSING,
            PaymentStatus.COMPLETE,
        )

        result = await engine.update_payment_status(payment.id, PaymentStatus.INITIALIZED)

        assert result.kind == FailureKind.INVALID_TRANSITION
        assert "terminal" in result.message
        assert result.details["valid_transitions"] == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_same_status_is_rejected(
        self, engine: PaymentLifecycleEngine, make_product
    ) -> None:
        product = await make_product()
        payment = (await _create(engine, product.id)).value

        result = await engine.update_payment_status(payment.id, PaymentStatus.INITIALIZED)

        assert result.kind == FailureKind.INVALID_TRANSITION

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_payment(self, engine: PaymentLifecycleEngine) -> None:
        result = await engine.update_payment_status(uuid.uuid4(), PaymentStatus.USER_SET)

        assert result.kind == FailureKind.NOT_FOUND


class TestCancelPayment:
    """Cancellation restores stock and deletes the payment."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cancel_initialized_payment(
        self, engine: PaymentLifecycleEngine, products: ProductService, make_product
    ) -> None:
        product = await make_product(stock_level=2)
        payment = (await _create(engine, product.id)).value

        result = await engine.cancel_payment(payment.id)

        assert isinstance(result, Success)
        assert result.value.id == payment.id
        assert result.value.status == PaymentStatus.INITIALIZED
        assert await engine.get_payment(payment.id) is None
        assert (await products.get_product(product.id)).stock_level == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "path",
        [
            (PaymentStatus.USER_SET,),
            (PaymentStatus.USER_SET, PaymentStatus.PAYMENT_PROCESSING),
            (
                PaymentStatus.USER_SET,
                PaymentStatus.PAYMENT_PROCESSING,
                PaymentStatus.COMPLETE,
            ),
        ],
        ids=["user_set", "payment_processing", "complete"],
    )
    async def test_cancel_after_initialized_is_rejected(
        self, engine: PaymentLifecycleEngine, products: ProductService, make_product, path
    ) -> None:
        product = await make_product(stock_level=2)
        payment = (await _create(engine, product.id)).value
        await _advance(engine, payment.id, *path)

        result = await engine.cancel_payment(payment.id)

        assert result.kind == FailureKind.NOT_CANCELABLE
        assert f"Current status: '{path[-1].value}'" in result.message
        kept = await engine.get_payment(payment.id)
        assert kept is not None
        assert kept.status == path[-1]
        assert (await products.get_product(product.id)).stock_level == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cancel_unknown_payment(self, engine: PaymentLifecycleEngine) -> None:
        result = await engine.cancel_payment(uuid.uuid4())

        assert result.kind == FailureKind.NOT_FOUND

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cancel_twice(self, engine: PaymentLifecycleEngine, make_product) -> None:
        product = await make_product()
        payment = (await _create(engine, product.id)).value
        await engine.cancel_payment(payment.id)

        result = await engine.cancel_payment(payment.id)

        assert result.kind == FailureKind.NOT_FOUND


class TestQueries:
    """Reads: listing, filtering and the completed total."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_is_most_recent_first_with_product(
        self, engine: PaymentLifecycleEngine, make_product
    ) -> None:
        product = await make_product()
        ids = []
        for _ in range(3):
            ids.append((await _create(engine, product.id)).value.id)
            await asyncio.sleep(0.01)

        listed = await engine.list_payments()

        assert [p.id for p in listed] == list(reversed(ids))
        assert all(p.product.id == product.id for p in listed)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_filtered_by_status(
        self, engine: PaymentLifecycleEngine, make_product
    ) -> None:
        product = await make_product()
        first = (await _create(engine, product.id)).value
        await _create(engine, product.id)
        await _advance(engine, first.id, PaymentStatus.USER_SET)

        listed = await engine.list_payments(PaymentStatus.USER_SET)

        assert [p.id for p in listed] == [first.id]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_total_completed_amount(
        self, engine: PaymentLifecycleEngine, make_product
    ) -> None:
        assert await engine.total_completed_amount() == Decimal("0.00")

        laptop = await make_product(price="1299.99")
        mouse = await make_product(name="Wireless Mouse", price="29.99")
        for product_id in (laptop.id, mouse.id):
            payment = (await _create(engine, product_id)).value
            await _advance(
                engine,
                payment.id,
                PaymentStatus.USER_SET,
                PaymentStatus.PAYMENT_PROCESSING,
                PaymentStatus.COMPLETE,
            )
        await _create(engine, laptop.id)

        assert await engine.total_completed_amount() == Decimal("1329.98")


class TestScenarios:
    """End-to-end flows through the engine."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_cancel_frees_last_unit_for_next_buyer(
        self, engine: PaymentLifecycleEngine, products: ProductService, make_product
    ) -> None:
        product = await make_product(price="10.00", stock_level=1)

        p1 = await _create(engine, product.id)
        assert isinstance(p1, Success)
        assert (await products.get_product(product.id)).stock_level == 0

        p2 = await _create(engine, product.id)
        assert p2.kind == FailureKind.OUT_OF_STOCK

        cancelled = await engine.cancel_payment(p1.value.id)
        assert isinstance(cancelled, Success)
        assert (await products.get_product(product.id)).stock_level == 1
        assert await engine.get_payment(p1.value.id) is None

        p3 = await _create(engine, product.id)
        assert isinstance(p3, Success)
        assert (await products.get_product(product.id)).stock_level == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_direct_jump_to_complete_lists_next_state(
        self, engine: PaymentLifecycleEngine, make_product
    ) -> None:
        product = await make_product()
        payment = (await _create(engine, product.id)).value
        assert payment.status == PaymentStatus.INITIALIZED

        result = await engine.update_payment_status(payment.id, PaymentStatus.COMPLETE)

        assert result.kind == FailureKind.INVALID_TRANSITION
        assert result.details["valid_transitions"] == [PaymentStatus.USER_SET.value]


class TestDatabaseSeeding:
    """Sample catalogue seeding."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_seed_only_into_empty_table(
        self, database: Database, products: ProductService
    ) -> None:
        assert await database.seed_sample_products() == 5
        assert await database.seed_sample_products() == 0

        names = {p.name for p in await products.list_products()}
        assert "Laptop Pro" in names
        assert len(names) == 5
