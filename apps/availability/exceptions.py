# apps/availability/exceptions.py
from __future__ import annotations

from typing import List, Optional


class AvailabilityError(Exception):
    """Base error for calendar operations; views map it to a 400."""

    status_code = 400

    def __init__(self, message: str, code: str = "availability_error", errors: Optional[List[str]] = None):
        self.message = message
        self.code = code
        self.errors = errors or []
        super().__init__(message)


class AvailabilityValidationError(AvailabilityError):
    def __init__(self, errors: List[str]):
        super().__init__(errors[0] if errors else "Invalid availability", "invalid_availability", errors)


class AvailabilityPermissionError(AvailabilityError):
    status_code = 403

    def __init__(self, message: str = "You do not have permission to manage this calendar"):
        super().__init__(message, "permission_denied")


class AvailabilityConflictError(AvailabilityError):
    """Raised when bookings or overlapping windows block the change."""

    status_code = 409

    def __init__(self, message: str, code: str = "conflict", errors: Optional[List[str]] = None):
        super().__init__(message, code, errors)


class InvalidTransitionError(AvailabilityError):
    status_code = 409

    def __init__(self, message: str):
        super().__init__(message, "invalid_transition")


class SlotGenerationError(AvailabilityError):
    def __init__(self, message: str):
        super().__init__(message, "slot_generation")
