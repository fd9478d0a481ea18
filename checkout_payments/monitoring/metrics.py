"""
Prometheus metrics for checkout payment monitoring.

Tracks:
- Payment operation counts by outcome
- Payment operation duration
- Stock contention (out of stock / depleted after lock)
- Status transitions
- Transaction rollbacks
"""
import time

from prometheus_client import Counter, Gauge, Histogram

# Payment metrics
payment_operations_total = Counter(
    "checkout_payment_operations_total",
    "Total payment lifecycle operations",
    ["operation", "outcome"],  # outcome: success or a failure kind
)

payment_operation_duration_seconds = Histogram(
    "checkout_payment_operation_duration_seconds",
    "Payment lifecycle operation duration in seconds",
    ["operation"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

idempotent_replays_total = Counter(
    "checkout_idempotent_replays_total",
    "Payment creations answered with an existing payment",
    ["source"],  # read, unique_violation
)

payment_status_transitions_total = Counter(
    "checkout_payment_status_transitions_total",
    "Accepted payment status transitions",
    ["from_status", "to_status"],
)

# Inventory metrics
stock_conflicts_total = Counter(
    "checkout_stock_conflicts_total",
    "Payment creations rejected for lack of stock",
    ["kind"],  # out_of_stock, stock_depleted
)

stock_restored_total = Counter(
    "checkout_stock_restored_total",
    "Stock units returned by payment cancellation",
)

# Database metrics
transaction_rollbacks_total = Counter(
    "checkout_transaction_rollbacks_total",
    "Coordinated transactions rolled back",
    ["reason"],  # failure, error
)

database_healthy = Gauge(
    "checkout_database_healthy",
    "Result of the last database health check (1=healthy, 0=unhealthy)",
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_payment_operation(operation: str, outcome: str, started_at: float) -> None:
        """Record a lifecycle operation and its duration since ``started_at``."""
        payment_operations_total.labels(operation=operation, outcome=outcome).inc()
        payment_operation_duration_seconds.labels(operation=operation).observe(
            time.perf_counter() - started_at
        )

    @staticmethod
    def record_idempotent_replay(source: str) -> None:
        idempotent_replays_total.labels(source=source).inc()

    @staticmethod
    def record_status_transition(from_status: str, to_status: str) -> None:
        payment_status_transitions_total.labels(
            from_status=from_status, to_status=to_status
        ).inc()

    @staticmethod
    def record_stock_conflict(kind: str) -> None:
        stock_conflicts_total.labels(kind=kind).inc()

    @staticmethod
    def record_stock_restored() -> None:
        stock_restored_total.inc()

    @staticmethod
    def record_rollback(reason: str) -> None:
        transaction_rollbacks_total.labels(reason=reason).inc()

    @staticmethod
    def set_database_health(healthy: bool) -> None:
        database_healthy.set(1 if healthy else 0)


# Export singleton instance
metrics = MetricsCollector()
