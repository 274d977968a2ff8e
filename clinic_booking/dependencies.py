"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends

from clinic_booking.config import settings
from clinic_booking.core.redis_client import CacheManager, get_redis_client
from clinic_booking.database import AsyncSessionLocal
from clinic_booking.services.booking_coordinator import BookingCoordinator
from clinic_booking.services.schedule_service import ScheduleService
from clinic_booking.services.transactions import TransactionRunner


def get_schedule_cache() -> CacheManager | None:
    """
    Get the schedule cache if caching is enabled.

    Returns:
        Cache manager over the shared Redis client, or None
    """
    if not settings.schedule_cache_enabled:
        return None
    return CacheManager(get_redis_client())


def get_transaction_runner() -> TransactionRunner:
    """Get a transaction runner over the application session factory."""
    return TransactionRunner(AsyncSessionLocal)


def get_booking_coordinator(
    transactions: Annotated[TransactionRunner, Depends(get_transaction_runner)],
    cache: Annotated[CacheManager | None, Depends(get_schedule_cache)],
) -> BookingCoordinator:
    """Get the booking coordinator."""
    return BookingCoordinator(transactions, schedule_cache=cache)


def get_schedule_service(
    transactions: Annotated[TransactionRunner, Depends(get_transaction_runner)],
    cache: Annotated[CacheManager | None, Depends(get_schedule_cache)],
) -> ScheduleService:
    """Get the schedule service."""
    return ScheduleService(transactions, cache=cache)


# Type aliases for dependency injection
Coordinator = Annotated[BookingCoordinator, Depends(get_booking_coordinator)]
Schedules = Annotated[ScheduleService, Depends(get_schedule_service)]
