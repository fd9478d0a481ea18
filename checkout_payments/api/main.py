"""
Main FastAPI application.

Checkout payment API with:
- CORS configuration
- Error handling
- Request ID tracking
- Structured logging
- Prometheus metrics
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from checkout_payments import __version__
from checkout_payments.config import Settings, get_settings
from checkout_payments.core import PaymentLifecycleEngine, ProductService, TransactionCoordinator
from checkout_payments.database import Database, translate_storage_error
from checkout_payments.monitoring.health import HealthCheck
from checkout_payments.monitoring.logging import setup_logging
from checkout_payments.results import FailureKind

from .routes import HTTP_STATUS_BY_KIND, monitoring_router, payment_router, product_router
from .schemas import ServiceInfoResponse

logger = structlog.get_logger(__name__)


def attach_services(app: FastAPI, database: Database) -> None:
    """Wire the service layer onto ``app.state`` for the route dependencies."""
    coordinator = TransactionCoordinator(database)
    app.state.database = database
    app.state.payment_engine = PaymentLifecycleEngine(database, coordinator)
    app.state.product_service = ProductService(database, coordinator)
    app.state.health_check = HealthCheck(database)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application for the given settings."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
        """
        Application lifespan manager.

        Handles startup and shutdown events.
        """
        setup_logging(settings)
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            env=settings.app_env,
        )

        database = Database(settings)
        try:
            await database.init_schema()
            logger.info("database_initialized")
            if settings.seed_sample_products:
                await database.seed_sample_products()
        except Exception as e:
            logger.error("database_initialization_failed", error=str(e))
            await database.close()
            raise

        attach_services(app, database)

        yield

        logger.info("application_shutdown")
        try:
            await database.close()
            logger.info("database_connections_closed")
        except Exception as e:
            logger.error("database_shutdown_error", error=str(e))

    app = FastAPI(
        title="Checkout Payment Service",
        description=(
            "Payment lifecycle and inventory service for an e-commerce checkout. "
            "Features: atomic stock reservation, idempotent payment creation, "
            "a strict status state machine and stock-restoring cancellation."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """
        Add request ID to all requests for tracing.

        A client supplied X-Request-ID is reused so calls can be correlated.
        """
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        logger.info(
            "request_started",
            client_host=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=time.time() - start_time,
            )
            return response

        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_seconds=time.time() - start_time,
            )
            raise

        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(SQLAlchemyError)
    async def storage_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        """Map storage errors that escaped the service layer to a classified body."""
        failure = translate_storage_error(exc)
        logger.error(
            "storage_exception",
            error_type=type(exc).__name__,
            kind=failure.kind.value,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=HTTP_STATUS_BY_KIND[failure.kind],
            content={"detail": {"error": failure.kind.value, "message": failure.message}},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled exceptions.
        """
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": {
                    "error": FailureKind.TRANSACTION_FAILED.value,
                    "message": "An unexpected error occurred. Please try again later.",
                }
            },
        )

    app.include_router(payment_router, prefix=settings.api_prefix)
    app.include_router(product_router, prefix=settings.api_prefix)
    app.include_router(monitoring_router)

    @app.get("/", tags=["root"], response_model=ServiceInfoResponse)
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": __version__,
            "environment": settings.app_env,
            "docs": "/docs",
            "health": "/health",
            "endpoints": [
                f"{settings.api_prefix}/payments",
                f"{settings.api_prefix}/products",
                "/metrics",
            ],
        }

    return app


def main() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "checkout_payments.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=settings.api_workers if not settings.debug else 1,
        log_level=settings.log_level.lower(),
    )


app = create_app()


if __name__ == "__main__":
    main()
