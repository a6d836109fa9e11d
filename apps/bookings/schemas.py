# apps/bookings/schemas.py
from rest_framework import serializers
from drf_spectacular.utils import OpenApiExample


# I describe the error body every booking failure returns.
class BookingError400Serializer(serializers.Serializer):
    detail = serializers.CharField()
    code = serializers.CharField()


# ---- Swagger example payloads ----

GuestBookingExample = OpenApiExample(
    "Guest books an in-person slot",
    value={
        "slot": 42,
        "appointment_type": "in_person",
        "guest_name": "Thandi Mokoena",
        "guest_email": "thandi@example.com",
        "notes": "First visit",
    },
)

ClientBookingExample = OpenApiExample(
    "Signed-in client books online",
    value={"slot": 43, "appointment_type": "online"},
)

DeclineBookingExample = OpenApiExample(
    "Decline",
    value={"reason": "Provider unavailable on that day"},
)

SlotUnavailableExample = OpenApiExample(
    "Slot already taken",
    value={"detail": "This slot is no longer available", "code": "slot_unavailable"},
    response_only=True,
    status_codes=["409"],
)
