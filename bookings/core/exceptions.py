"""
Domain errors raised by the booking services.
Each error carries the HTTP status and error code it is rendered with.
"""

from typing import Any, Dict, Optional


class BookingServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    error_code = "BOOKING_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(BookingServiceError):
    """Entity is absent or not in a requestable state (e.g. unpublished event)."""

    status_code = 404
    error_code = "NOT_FOUND"


class ConflictError(BookingServiceError):
    """Duplicate booking for the same user and event."""

    status_code = 409
    error_code = "CONFLICT"


class InvalidStateError(BookingServiceError):
    """Operation not allowed in the booking's or event's current state."""

    status_code = 400
    error_code = "INVALID_STATE"


class CapacityExceededError(InvalidStateError):
    """Admission would push an event above its maximum attendees."""

    error_code = "CAPACITY_EXCEEDED"


class ForbiddenError(BookingServiceError):
    """Caller is neither the owner nor sufficiently privileged."""

    status_code = 403
    error_code = "FORBIDDEN"


class LockAcquisitionError(BookingServiceError):
    """Per-event admission lock could not be acquired in time."""

    status_code = 503
    error_code = "LOCK_UNAVAILABLE"


class AuditLogError(BookingServiceError):
    """Audit entry could not be written under the strict audit policy."""

    status_code = 500
    error_code = "AUDIT_LOG_FAILED"
