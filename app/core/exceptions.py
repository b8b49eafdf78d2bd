"""Domain errors raised by the booking core.

Every error carries the HTTP status it maps to; ``app.main`` registers a single
handler that turns any ``BookingError`` into ``{"detail": ...}``.
"""


class BookingError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(BookingError):
    """Malformed request, rejected before any write."""
    status_code = 400


class BusinessNotFound(BookingError):
    status_code = 404


class BookingNotFound(BookingError):
    status_code = 404


class ConsultantNotFound(BookingError):
    status_code = 404


class SlotUnavailable(BookingError):
    """Conflict detected while creating or rescheduling a booking."""
    status_code = 409


class SlotNoLongerAvailable(BookingError):
    """Conflict detected when the payment for a booking is confirmed."""
    status_code = 409


class InvalidTransition(BookingError):
    status_code = 409


class CounterTransactionFailed(BookingError):
    """The reference counter transaction did not commit after all retries."""
    status_code = 503


class DispatchFailure(BookingError):
    """A notification or meeting-link call failed. Logged, never surfaced to clients."""
    status_code = 502
