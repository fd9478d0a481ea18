"""Database connection and session management."""
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from checkout_payments.config import Settings
from checkout_payments.database.models import Base, Product
from checkout_payments.database.seed import SAMPLE_PRODUCTS

logger = structlog.get_logger(__name__)


def _enable_sqlite_write_locking(engine: AsyncEngine) -> None:
    """
    Make SQLite transactions take the write lock up front.

    SQLite has no ``SELECT ... FOR UPDATE``. Opening every transaction with
    ``BEGIN IMMEDIATE`` gives the same guarantee for lock-for-update reads:
    a second writer blocks (up to the busy timeout) until the first one
    commits or rolls back, then sees the committed state.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        # Take over transaction control from the driver.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """
    Owns the engine and session factory for one process.

    Constructed explicitly from ``Settings`` at startup and handed to the
    services that need it; there is no module-level engine.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.engine = self._create_engine(settings)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @staticmethod
    def _create_engine(settings: Settings) -> AsyncEngine:
        if settings.is_sqlite:
            engine = create_async_engine(
                settings.database_url,
                echo=settings.database_echo,
                poolclass=NullPool,
                connect_args={"timeout": settings.sqlite_busy_timeout},
            )
            _enable_sqlite_write_locking(engine)
            return engine

        return create_async_engine(
            settings.database_url,
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_pre_ping=True,  # Verify connections before using
            pool_recycle=3600,  # Recycle connections after 1 hour
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Open a session for plain reads.

        Writes go through ``TransactionCoordinator`` instead.
        """
        async with self.session_factory() as session:
            yield session

    async def init_schema(self) -> None:
        """Create all tables defined in models if they don't exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_schema(self) -> None:
        """Drop all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def seed_sample_products(self) -> int:
        """
        Insert the sample catalogue when the products table is empty.

        Returns:
            int: Number of products inserted
        """
        async with self.session_factory() as session:
            async with session.begin():
                count = await session.scalar(select(func.count()).select_from(Product))
                if count:
                    return 0
                session.add_all(Product(**data) for data in SAMPLE_PRODUCTS)

        logger.info("sample_products_seeded", count=len(SAMPLE_PRODUCTS))
        return len(SAMPLE_PRODUCTS)

    async def close(self) -> None:
        """Close database connections and dispose of the engine."""
        await self.engine.dispose()
