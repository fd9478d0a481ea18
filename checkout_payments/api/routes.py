"""
API routes for products, payments and monitoring.
"""
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from checkout_payments import domain
from checkout_payments.core import PaymentLifecycleEngine, ProductService
from checkout_payments.domain import PaymentStatus
from checkout_payments.monitoring.health import HealthCheck
from checkout_payments.results import Failure, FailureKind, Result, Success

from .schemas import (
    CreatePaymentRequest,
    CreateProductRequest,
    ErrorDetail,
    HealthCheckResponse,
    PaymentResponse,
    PaymentWithProductResponse,
    ProductResponse,
    TotalCompletedResponse,
    UpdatePaymentStatusRequest,
    UpdateProductRequest,
    UpdateStockRequest,
)

logger = structlog.get_logger(__name__)

# Create routers
payment_router = APIRouter(prefix="/payments", tags=["payments"])
product_router = APIRouter(prefix="/products", tags=["products"])
monitoring_router = APIRouter(tags=["monitoring"])

HTTP_STATUS_BY_KIND: Dict[FailureKind, int] = {
    FailureKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    FailureKind.OUT_OF_STOCK: status.HTTP_409_CONFLICT,
    FailureKind.STOCK_DEPLETED: status.HTTP_409_CONFLICT,
    FailureKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    FailureKind.NOT_CANCELABLE: status.HTTP_409_CONFLICT,
    FailureKind.DUPLICATE_IDEMPOTENCY_KEY: status.HTTP_409_CONFLICT,
    FailureKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    FailureKind.TRANSACTION_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    FailureKind.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}

ERROR_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    code: {"model": ErrorDetail}
    for code in (400, 404, 409, 500, 503)
}


def failure_to_http(failure: Failure) -> HTTPException:
    """Convert a business failure into the client-facing HTTP error."""
    return HTTPException(
        status_code=HTTP_STATUS_BY_KIND[failure.kind],
        detail={"error": failure.kind.value, "message": failure.message, **failure.details},
    )


def unwrap(result: Result[Any]) -> Any:
    """Return the success value or raise the mapped HTTP error."""
    if isinstance(result, Success):
        return result.value
    raise failure_to_http(result)


def get_payment_engine(request: Request) -> PaymentLifecycleEngine:
    return request.app.state.payment_engine


def get_product_service(request: Request) -> ProductService:
    return request.app.state.product_service


def get_health_check(request: Request) -> HealthCheck:
    return request.app.state.health_check


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@payment_router.get(
    "",
    response_model=List[PaymentWithProductResponse],
    summary="List payments",
    description="List payments with their products, most recent first",
)
async def list_payments(
    status_filter: Optional[PaymentStatus] = Query(default=None, alias="status"),
    engine: PaymentLifecycleEngine = Depends(get_payment_engine),
) -> List[domain.PaymentWithProduct]:
    """Get all payments with an optional status filter."""
    return await engine.list_payments(status_filter)


@payment_router.get(
    "/total/completed",
    response_model=TotalCompletedResponse,
    summary="Total of completed payments",
)
async def total_completed(
    engine: PaymentLifecycleEngine = Depends(get_payment_engine),
) -> Dict[str, Any]:
    """Get the total amount of all completed payments."""
    return {"total": await engine.total_completed_amount()}


@payment_router.get(
    "/{payment_id}",
    response_model=PaymentWithProductResponse,
    responses=ERROR_RESPONSES,
    summary="Get payment",
)
async def get_payment(
    payment_id: UUID,
    engine: PaymentLifecycleEngine = Depends(get_payment_engine),
) -> domain.PaymentWithProduct:
    """Get payment by ID."""
    payment = await engine.get_payment(payment_id)
    if payment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": FailureKind.NOT_FOUND.value, "message": "Payment not found"},
        )
    return payment


@payment_router.post(
    "",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Create a payment",
    description="Create a payment and reserve one unit of stock. Idempotent per idempotency_key.",
)
async def create_payment(
    request: CreatePaymentRequest,
    engine: PaymentLifecycleEngine = Depends(get_payment_engine),
) -> domain.Payment:
    """
    Create a new payment.

    This endpoint is idempotent - duplicate requests return the same payment.
    """
    logger.info(
        "api_create_payment_request",
        product_id=str(request.product_id),
        payment_method=request.payment_method.value,
        user_id=request.user_id,
    )
    result = await engine.create_payment(
        product_id=request.product_id,
        payment_method=request.payment_method,
        user_id=request.user_id,
        idempotency_key=request.idempotency_key,
    )
    return unwrap(result)


@payment_router.patch(
    "/{payment_id}/status",
    response_model=PaymentResponse,
    responses=ERROR_RESPONSES,
    summary="Update payment status",
)
async def update_payment_status(
    payment_id: UUID,
    request: UpdatePaymentStatusRequest,
    engine: PaymentLifecycleEngine = Depends(get_payment_engine),
) -> domain.Payment:
    """Advance a payment to the next status."""
    return unwrap(await engine.update_payment_status(payment_id, request.status))


@payment_router.delete(
    "/{payment_id}/cancel",
    response_model=PaymentResponse,
    responses=ERROR_RESPONSES,
    summary="Cancel payment",
    description="Cancel an initialized payment and restore its stock",
)
async def cancel_payment(
    payment_id: UUID,
    engine: PaymentLifecycleEngine = Depends(get_payment_engine),
) -> domain.Payment:
    """Cancel a payment; returns the payment as it was before deletion."""
    return unwrap(await engine.cancel_payment(payment_id))


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


@product_router.get("", response_model=List[ProductResponse], summary="List products")
async def list_products(
    service: ProductService = Depends(get_product_service),
) -> List[domain.Product]:
    return await service.list_products()


@product_router.get(
    "/{product_id}",
    response_model=ProductResponse,
    responses=ERROR_RESPONSES,
    summary="Get product",
)
async def get_product(
    product_id: UUID,
    service: ProductService = Depends(get_product_service),
) -> domain.Product:
    product = await service.get_product(product_id)
    if product is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": FailureKind.NOT_FOUND.value, "message": "Product not found"},
        )
    return product


@product_router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Create product",
)
async def create_product(
    request: CreateProductRequest,
    service: ProductService = Depends(get_product_service),
) -> domain.Product:
    return unwrap(
        await service.create_product(
            name=request.name,
            description=request.description,
            price=request.price,
            stock_level=request.stock_level,
        )
    )


@product_router.put(
    "/{product_id}",
    response_model=ProductResponse,
    responses=ERROR_RESPONSES,
    summary="Update product",
)
async def update_product(
    product_id: UUID,
    request: UpdateProductRequest,
    service: ProductService = Depends(get_product_service),
) -> domain.Product:
    return unwrap(
        await service.update_product(product_id, **request.model_dump(exclude_unset=True))
    )


@product_router.patch(
    "/{product_id}/stock",
    response_model=ProductResponse,
    responses=ERROR_RESPONSES,
    summary="Set stock level",
)
async def set_stock(
    product_id: UUID,
    request: UpdateStockRequest,
    service: ProductService = Depends(get_product_service),
) -> domain.Product:
    return unwrap(await service.set_stock(product_id, request.stock_level))


@product_router.delete(
    "/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=ERROR_RESPONSES,
    summary="Delete product",
    description="Delete a product. Payments referencing it are deleted as well.",
)
async def delete_product(
    product_id: UUID,
    service: ProductService = Depends(get_product_service),
) -> Response:
    unwrap(await service.delete_product(product_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Monitoring
# ---------------------------------------------------------------------------


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    return await health_check.check_all()


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
)
async def liveness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Liveness probe endpoint."""
    return await health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
)
async def readiness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Readiness probe endpoint."""
    result = await health_check.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
