"""
Health checks for readiness/liveness probes.

Checks:
- Database connectivity
"""
from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from sqlalchemy import text

from checkout_payments import __version__
from checkout_payments.database.connection import Database
from checkout_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """Health check service for the database dependency."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Returns:
            Dict[str, Any]: Database health status

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            async with self.database.session() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()
        except Exception as e:
            metrics.set_database_health(False)
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {type(e).__name__}") from e

        metrics.set_database_health(True)
        return {
            "status": "healthy",
            "service": "database",
            "message": "Database connection successful",
        }

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks = {}
        all_healthy = True

        try:
            checks["database"] = await self.check_database()
        except HealthCheckError as e:
            checks["database"] = {
                "status": "unhealthy",
                "service": "database",
                "error": str(e),
            }
            all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def liveness(self) -> Dict[str, Any]:
        """
        Liveness probe.

        Does not check external dependencies.
        """
        return {
            "status": "alive",
            "message": "API is running",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def readiness(self) -> Dict[str, Any]:
        """Readiness probe: verifies all dependencies are available."""
        return await self.check_all()
