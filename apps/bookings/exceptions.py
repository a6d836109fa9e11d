# apps/bookings/exceptions.py


class BookingError(Exception):
    """Base exception for booking failures."""

    status_code = 400

    def __init__(self, message, code="booking_error"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class SlotNotFoundError(BookingError):
    status_code = 404

    def __init__(self, message="Slot not found"):
        super().__init__(message, code="slot_not_found")


class SlotUnavailableError(BookingError):
    """Raised when the requested slot is no longer available."""

    status_code = 409

    def __init__(self, message="This slot is no longer available"):
        super().__init__(message, code="slot_unavailable")


class PastSlotError(BookingError):
    def __init__(self, message="Cannot book a slot that has already started"):
        super().__init__(message, code="past_slot")


class BookingPermissionError(BookingError):
    status_code = 403

    def __init__(self, message="You do not have permission to manage this booking"):
        super().__init__(message, code="permission_denied")


class InvalidBookingTransition(BookingError):
    status_code = 409

    def __init__(self, message):
        super().__init__(message, code="invalid_transition")
