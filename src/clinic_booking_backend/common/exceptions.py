"""
This file contains custom, application-specific exceptions.

Every rejection the booking engine can produce is a subclass of
BookingEngineError. They are per-request outcomes, never fatal to the process,
and carry enough detail for the caller to explain the rejection.
"""
from typing import Any, Optional


class BookingEngineError(Exception):
    """Base class for all availability/booking rejections."""
    kind = "BookingEngineError"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "detail": self.message, "details": self.details}


class InvalidRange(BookingEngineError):
    """Raised when end <= start, or a range exceeds the configured maximum span."""
    kind = "InvalidRange"


class NotFound(BookingEngineError):
    """Raised when a staff member, service, location, booking or slot does not exist."""
    kind = "NotFound"


class RoleMismatch(BookingEngineError):
    """Raised when a staff member's role does not satisfy the service requirement."""
    kind = "RoleMismatch"


class ConsentRequired(BookingEngineError):
    """Raised when the service mandates consent and none was supplied."""
    kind = "ConsentRequired"


class Conflict(BookingEngineError):
    """
    Raised when the requested window collides with an absence, closure,
    off-hours time or an existing booking on any required resource.
    """
    kind = "Conflict"

    def __init__(self, message: str, collisions: Optional[list[dict[str, Any]]] = None):
        self.collisions = collisions or []
        super().__init__(message, {"collisions": self.collisions})


class ResourceExhausted(BookingEngineError):
    """Raised when fewer interchangeable rooms/devices are free than required."""
    kind = "ResourceExhausted"

    def __init__(self, resource_type: str, required: int, available: int):
        self.resource_type = resource_type
        self.required = required
        self.available = available
        super().__init__(
            f"Only {available} of {required} required {resource_type}(s) are free in the requested window.",
            {"resource_type": resource_type, "required": required, "available": available},
        )


class CancellationWindowExpired(BookingEngineError):
    """Raised when a cancellation is attempted too close to the start time."""
    kind = "CancellationWindowExpired"


class InvalidStateTransition(BookingEngineError):
    """Raised when a booking or absence is not in a state that allows the action."""
    kind = "InvalidStateTransition"


class DeadlineExceeded(BookingEngineError):
    """Raised when a booking request runs past its caller-supplied deadline."""
    kind = "DeadlineExceeded"
