"""Transaction handling for check-and-write booking operations."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_booking.config import settings
from clinic_booking.core.exceptions import (
    AppException,
    ConcurrencyConflictException,
    ConflictException,
    StorageUnavailableException,
)
from clinic_booking.core.metrics import (
    booking_transaction_failures_total,
    booking_transaction_retries_total,
)
from clinic_booking.repositories.booking_repository import BookingRepository

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def classify_storage_error(exc: Exception) -> AppException | None:
    """
    Map a driver failure onto the booking error taxonomy.

    Args:
        exc: Exception raised while talking to the store

    Returns:
        The application exception to surface, or None if the error is a
        programming error that should propagate unchanged
    """
    if isinstance(exc, OSError):
        return StorageUnavailableException()
    if not isinstance(exc, DBAPIError):
        return None

    if _sqlstate(exc) in RETRYABLE_SQLSTATES or "database is locked" in str(exc.orig):
        return ConcurrencyConflictException()
    if isinstance(exc, IntegrityError):
        return ConflictException("Write conflicts with existing data")
    if exc.connection_invalidated or isinstance(exc, (OperationalError, InterfaceError)):
        return StorageUnavailableException()
    return None


class TransactionRunner:
    """Runs a unit of work in its own transaction, retrying on conflicts.

    Each attempt opens a fresh session, sets the configured isolation level and
    (on PostgreSQL) a lock timeout, then hands a ``BookingRepository`` bound to
    that session to the work function. The transaction commits when the work
    returns and rolls back when it raises.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        isolation_level: str | None = settings.booking_isolation_level,
        lock_timeout_ms: int = settings.booking_lock_timeout_ms,
        max_retries: int = settings.booking_max_retries,
        retry_backoff_ms: int = settings.booking_retry_backoff_ms,
    ):
        """Initialize runner with a session factory and transaction settings."""
        self.session_factory = session_factory
        self.isolation_level = isolation_level
        self.lock_timeout_ms = lock_timeout_ms
        self.max_retries = max_retries
        self.retry_backoff_ms = retry_backoff_ms

    async def run(
        self,
        operation: str,
        work: Callable[[BookingRepository], Awaitable[T]],
    ) -> T:
        """
        Run work atomically.

        Args:
            operation: Operation name for logs
            work: Coroutine function receiving the transaction's repository

        Returns:
            Whatever the work returns

        Raises:
            ConcurrencyConflictException: If conflicts persist after all retries
            StorageUnavailableException: If the store cannot be reached
        """
        attempt = 0
        while True:
            try:
                return await self._run_once(work)
            except (DBAPIError, OSError) as e:
                error = classify_storage_error(e)
                if error is None:
                    raise
                if isinstance(error, ConcurrencyConflictException) and attempt < self.max_retries:
                    attempt += 1
                    booking_transaction_retries_total.labels(operation=operation).inc()
                    logger.warning(
                        "booking_transaction_retry",
                        operation=operation,
                        attempt=attempt,
                        error=str(e),
                    )
                    await asyncio.sleep(self.retry_backoff_ms * attempt / 1000)
                    continue
                logger.warning(
                    "booking_transaction_failed",
                    operation=operation,
                    attempts=attempt + 1,
                    error_type=type(error).__name__,
                    error=str(e),
                )
                booking_transaction_failures_total.labels(
                    operation=operation, error=type(error).__name__
                ).inc()
                raise error from e

    async def _run_once(self, work: Callable[[BookingRepository], Awaitable[T]]) -> T:
        async with self.session_factory() as session:
            async with session.begin():
                execution_options = {}
                if self.isolation_level:
                    execution_options["isolation_level"] = self.isolation_level
                connection = await session.connection(execution_options=execution_options)

                if self.lock_timeout_ms and connection.dialect.name == "postgresql":
                    await session.execute(
                        text(f"SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}")
                    )

                return await work(BookingRepository(session))
