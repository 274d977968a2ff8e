"""Read-only lookup of doctors' weekly availability windows."""

from datetime import time
from uuid import UUID

import structlog

from clinic_booking.config import settings
from clinic_booking.core.redis_client import CacheManager
from clinic_booking.repositories.booking_repository import BookingStore
from clinic_booking.schemas.schedules import DayOfWeek

logger = structlog.get_logger(__name__)

Window = tuple[time, time]


def schedule_generation_key(doctor_id: UUID) -> str:
    """Key of the counter bumped by every schedule write of a doctor."""
    return f"schedule-generation:{doctor_id}"


def schedule_cache_key(doctor_id: UUID, day: DayOfWeek, generation: int = 0) -> str:
    """Cache key for one doctor's windows on one weekday in one generation."""
    return f"schedule:{doctor_id}:g{generation}:{day.value}"


def schedule_cache_pattern(doctor_id: UUID) -> str:
    """Pattern matching every cached weekday of a doctor."""
    return f"schedule:{doctor_id}:*"


def invalidate_schedule_cache(cache: CacheManager, doctor_id: UUID) -> None:
    """
    Drop a doctor's cached windows.

    The generation is bumped before the keys are deleted, so a lookup that read
    the store before the schedule write can only fill a key of the old
    generation, which no later lookup reads.

    Args:
        cache: Schedule cache
        doctor_id: Doctor whose schedule changed
    """
    generation = cache.incr(schedule_generation_key(doctor_id))
    deleted = cache.delete_pattern(schedule_cache_pattern(doctor_id))
    logger.debug(
        "schedule_cache_invalidated",
        doctor_id=str(doctor_id),
        generation=generation,
        deleted=deleted,
    )


class ScheduleIndex:
    """Answers which windows a doctor is available in on a given weekday.

    Windows are read from the store on every call. When a cache is supplied
    they are served from Redis until a schedule write invalidates them (see
    ``invalidate_schedule_cache``).
    """

    def __init__(
        self,
        store: BookingStore,
        cache: CacheManager | None = None,
        cache_ttl: int = settings.schedule_cache_ttl,
    ):
        """Initialize index over a store with an optional cache."""
        self.store = store
        self.cache = cache
        self.cache_ttl = cache_ttl

    async def availability_for(self, doctor_id: UUID, day: DayOfWeek) -> list[Window]:
        """
        Get the recurring availability windows of a doctor on a weekday.

        Args:
            doctor_id: Doctor ID
            day: Day of the week

        Returns:
            (start, end) windows in no particular order; empty if the doctor
            does not work that day
        """
        if not self.cache:
            return await self.store.availability_windows(doctor_id, day)

        # Read before the store, so a concurrent invalidation retires this key
        generation = int(self.cache.get_json(schedule_generation_key(doctor_id)) or 0)
        cache_key = schedule_cache_key(doctor_id, day, generation)

        cached = self.cache.get_json(cache_key)
        if cached is not None:
            return [(time.fromisoformat(start), time.fromisoformat(end)) for start, end in cached]

        windows = await self.store.availability_windows(doctor_id, day)
        self.cache.set_json(
            cache_key,
            [[start.isoformat(), end.isoformat()] for start, end in windows],
            ttl=self.cache_ttl,
        )
        return windows
