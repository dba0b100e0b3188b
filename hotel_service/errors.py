from typing import Optional

from fastapi import status


class BookingError(Exception):
    """
    Base class for every failure the booking core reports.

    Subclasses fix the HTTP status the transport layer answers with; the
    ``detail`` is the client-visible message and never contains payloads.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(BookingError):
    """Malformed or out-of-policy request. Client fault, never retried."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class ConflictError(BookingError):
    """Business-rule rejection given current state (room taken, already cancelled...)."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Conflict"


class DataIntegrityFault(BookingError):
    """Stored data breaks an internal invariant, e.g. a booking with no room."""
    default_detail = "Booking data is inconsistent - no room associated"


class UnexpectedError(BookingError):
    pass
