"""
Daylog Backend — Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for the different failure scenarios.
How:   Each exception carries a message and an optional context dict.
       Global exception handlers (registered in main.py) map them to
       structured JSON error responses with the right HTTP status.
Who:   Raised by the entry store, services and routes; caught by global handlers.

Exception Hierarchy:
    DaylogError (base)
    ├── StorageUnavailableError  → 503 Service Unavailable
    ├── ValidationError          → 400 Bad Request
    ├── NotFoundError            → 404 Not Found
    ├── FileStorageError         → 500 Internal Server Error
    ├── WeatherServiceError      → 503 Service Unavailable
    └── CircuitBreakerOpenError  → 503 Service Unavailable

StorageUnavailableError is the only storage error the entry store originates.
It is raised as-is to the caller: the store never retries and never swallows
it. The store also raises ValidationError for an out-of-range timestamp,
before anything is written.
"""

from typing import Any, Dict, Optional


class DaylogError(Exception):
    """
    Base exception for all Daylog application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned for server errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class StorageUnavailableError(DaylogError):
    """
    Raised when the durable entry store cannot be read or written.

    When:    Disk full, permission denied, database corruption, schema refused,
             or any call made on a store that is not open.
    HTTP:    503 Service Unavailable

    An insert that raises this error did not happen: no id was consumed, no
    record was written and no subscriber was notified.
    """

    def __init__(
        self,
        message: str = "The journal storage is unavailable",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ValidationError(DaylogError):
    """
    Raised when client input fails validation.

    When:    Media file type mismatch, size exceeded, empty upload, malformed path.
    HTTP:    400 Bad Request

    Example response:
        {
            "error": "validation_error",
            "message": "File type '.gif' is not supported for image. Allowed: .jpeg, .jpg, .png",
            "details": {"field": "image", "extension": ".gif"}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(DaylogError):
    """
    Raised when a requested resource does not exist.

    When:    GET /api/media/{path} for a file that was never stored.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class FileStorageError(DaylogError):
    """
    Raised when media file system operations fail.

    When:    Disk full, permission denied, directory not writable, I/O error.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class WeatherServiceError(DaylogError):
    """
    Raised when the weather provider fails after all retries.

    The entry workflow never lets this reach the store: a failed fetch turns
    into the "Weather unavailable" placeholder text.
    HTTP:    503 Service Unavailable (only from the weather preview endpoint)
    """

    def __init__(
        self,
        message: str = "Weather service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(DaylogError):
    """
    Raised when the weather circuit breaker is in OPEN state.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for the recovery timeout)
        → After the timeout → HALF-OPEN (allow one test call)
        → If test succeeds → CLOSED
        → If test fails → OPEN again (timer restarts)
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Weather service is temporarily unavailable due to repeated failures. "
            f"The service will automatically retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time
