"""Custom application exceptions.

Booking rejections (doctor overlap, outside schedule, room overlap,
overpayment) are not exceptions: they travel as ``Rejection`` values inside a
``BookingResult``. The classes here cover everything else.
"""


class AppException(Exception):
    """Base application exception."""

    retryable: bool = False

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class StorageUnavailableException(AppException):
    """The backing store could not be reached or failed transiently."""

    retryable = True

    def __init__(self, message: str = "Storage temporarily unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)


class ConcurrencyConflictException(AppException):
    """A concurrent transaction touched the same doctor, room or appointment.

    Raised only once the coordinator has used up its retries. Callers may retry
    the whole operation.
    """

    retryable = True

    def __init__(self, message: str = "Concurrent booking conflict, please retry"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class InvariantViolationException(AppException):
    """Stored data broke an invariant the booking core relies on."""

    def __init__(self, message: str = "Internal data integrity error"):
        """Initialize with 500 status code."""
        super().__init__(message, status_code=500)
