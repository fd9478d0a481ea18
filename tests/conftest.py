"""
Pytest configuration and fixtures.
"""
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from checkout_payments import domain
from checkout_payments.api.main import attach_services, create_app
from checkout_payments.config import Settings
from checkout_payments.core import PaymentLifecycleEngine, ProductService, TransactionCoordinator
from checkout_payments.database import Database
from checkout_payments.results import Success

ProductFactory = Callable[..., Awaitable[domain.Product]]


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings backed by a throwaway SQLite file."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'checkout_test.db'}",
        sqlite_busy_timeout=30.0,
        app_name="checkout-payments-test",
        app_env="test",
        log_level="DEBUG",
        debug=True,
        api_prefix="/api/v1",
    )


@pytest_asyncio.fixture
async def database(test_settings: Settings) -> AsyncGenerator[Database, Any]:
    """Create a database with a fresh schema."""
    db = Database(test_settings)
    await db.init_schema()
    yield db
    await db.close()


@pytest.fixture
def coordinator(database: Database) -> TransactionCoordinator:
    return TransactionCoordinator(database)


@pytest.fixture
def engine(database: Database, coordinator: TransactionCoordinator) -> PaymentLifecycleEngine:
    """Payment lifecycle engine under test."""
    return PaymentLifecycleEngine(database, coordinator)


@pytest.fixture
def products(database: Database, coordinator: TransactionCoordinator) -> ProductService:
    return ProductService(database, coordinator)


@pytest.fixture
def make_product(products: ProductService) -> ProductFactory:
    """Factory for products with sensible defaults."""

    async def _make(
        name: str = "Laptop Pro",
        price: str = "1299.99",
        stock_level: int = 10,
        description: str = "High-performance laptop for professionals",
    ) -> domain.Product:
        result = await products.create_product(
            name=name,
            price=Decimal(price),
            stock_level=stock_level,
            description=description,
        )
        assert isinstance(result, Success), result
        return result.value

    return _make


@pytest_asyncio.fixture
async def client(
    test_settings: Settings, database: Database
) -> AsyncGenerator[AsyncClient, Any]:
    """
    Create test HTTP client.

    ASGITransport does not run the lifespan, so services are attached here.
    """
    app = create_app(test_settings)
    attach_services(app, database)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def sample_payment_data() -> dict[str, Any]:
    """Sample payment request data (product_id filled in by the test)."""
    return {
        "payment_method": "credit_card",
        "user_id": "user123",
        "idempotency_key": "payment-123-abc",
    }
