"""Translation of storage-layer exceptions into failure kinds."""
from sqlalchemy import exc as sa_exc

from checkout_payments.results import Failure, FailureKind

# PostgreSQL SQLSTATE codes for integrity violations
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
NOT_NULL_VIOLATION = "23502"
CHECK_VIOLATION = "23514"


def _sqlstate(error: sa_exc.DBAPIError) -> str | None:
    orig = error.orig
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def is_unique_violation(error: BaseException, column: str | None = None) -> bool:
    """
    Check whether ``error`` is a uniqueness violation.

    Args:
        error: Exception raised by SQLAlchemy
        column: Optional column name that must appear in the error text

    Returns:
        bool: True if the error is a unique constraint violation
    """
    if not isinstance(error, sa_exc.IntegrityError):
        return False
    text = str(error.orig)
    unique = _sqlstate(error) == UNIQUE_VIOLATION or "UNIQUE constraint failed" in text
    if not unique:
        return False
    return column is None or column in text


def translate_storage_error(error: BaseException) -> Failure:
    """
    Map a storage exception to the nearest failure kind.

    The returned message is safe to show to clients; the raw driver text is
    never included.
    """
    if isinstance(error, sa_exc.IntegrityError):
        text = str(error.orig)
        code = _sqlstate(error)
        if is_unique_violation(error, "idempotency_key"):
            return Failure(
                FailureKind.DUPLICATE_IDEMPOTENCY_KEY,
                "A payment with this idempotency key already exists.",
            )
        if code == UNIQUE_VIOLATION or "UNIQUE constraint failed" in text:
            return Failure(FailureKind.INVALID_INPUT, "Duplicate entry.")
        if code == FOREIGN_KEY_VIOLATION or "FOREIGN KEY constraint failed" in text:
            return Failure(FailureKind.NOT_FOUND, "Referenced record not found.")
        if code == NOT_NULL_VIOLATION or "NOT NULL constraint failed" in text:
            return Failure(FailureKind.INVALID_INPUT, "Required field missing.")
        if code == CHECK_VIOLATION or "CHECK constraint failed" in text:
            return Failure(FailureKind.INVALID_INPUT, "Value violates a data constraint.")
        return Failure(FailureKind.INVALID_INPUT, "Data integrity violation.")

    if isinstance(error, (sa_exc.TimeoutError, sa_exc.OperationalError, sa_exc.DisconnectionError)):
        return Failure(
            FailureKind.UNAVAILABLE,
            "The database is temporarily unavailable. Please try again later.",
        )

    return Failure(
        FailureKind.TRANSACTION_FAILED,
        "The operation could not be completed. All changes have been rolled back.",
    )
