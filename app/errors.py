"""
Domain errors raised by the booking core.

Each error carries a machine readable ``code`` and the HTTP status it maps to,
so the API layer can render them without knowing which operation failed.
"""

from typing import Any, Dict, Optional


class BookingError(Exception):
    """Base class for caller-visible booking errors"""

    code = "BOOKING_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(BookingError):
    """Malformed or policy-violating input"""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(BookingError):
    """Referenced record does not exist in this tenant"""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: Optional[Any] = None):
        if resource_id is not None:
            message = f"{resource} not found: {resource_id}"
        else:
            message = f"{resource} not found"
        super().__init__(
            message,
            {"resource": resource, "id": str(resource_id) if resource_id is not None else None},
        )
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(BookingError):
    """The requested time overlaps an active reservation"""

    code = "CONFLICT"
    status_code = 409


class TerminalStateError(BookingError):
    """A reservation in a terminal status cannot change any further"""

    code = "TERMINAL_STATE"
    status_code = 409

    def __init__(self, current: str, requested: Optional[str] = None):
        if requested:
            message = f"Reservation is {current}; cannot transition to {requested}"
        else:
            message = f"Reservation is {current} and can no longer be modified"
        super().__init__(message, {"current_status": current, "requested_status": requested})
        self.current = current
        self.requested = requested
