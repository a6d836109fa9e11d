# apps/bookings/models.py
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import F, Q


class BookingStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    CONFIRMED = "CONFIRMED", "Confirmed"
    CANCELLED = "CANCELLED", "Cancelled"
    COMPLETED = "COMPLETED", "Completed"
    NO_SHOW = "NO_SHOW", "No show"


# Only these statuses hold the slot
ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)
TERMINAL_STATUSES = (BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW)


class AppointmentType(models.TextChoices):
    ONLINE = "online", "Online"
    IN_PERSON = "in_person", "In person"


class Booking(models.Model):
    # Links
    slot = models.ForeignKey(
        "availability.CalculatedSlot",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="bookings",
    )
    provider = models.ForeignKey(
        "providers.Provider", on_delete=models.PROTECT, related_name="bookings"
    )
    service = models.ForeignKey(
        "services.Service", on_delete=models.PROTECT, related_name="bookings"
    )
    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="bookings",
    )

    # Guest contact (also filled from the client account)
    guest_name = models.CharField(max_length=200, blank=True, default="")
    guest_email = models.EmailField(blank=True, default="")
    guest_whatsapp = models.CharField(max_length=32, blank=True, default="")

    # Time window copied from the slot (timezone-aware)
    start = models.DateTimeField()
    end = models.DateTimeField()
    duration = models.PositiveIntegerField(help_text="Minutes")
    price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))

    # Details
    is_online = models.BooleanField(default=False)
    is_in_person = models.BooleanField(default=True)
    location = models.ForeignKey(
        "providers.Location", null=True, blank=True, on_delete=models.SET_NULL, related_name="bookings"
    )
    status = models.CharField(
        max_length=16, choices=BookingStatus.choices, default=BookingStatus.PENDING
    )
    notes = models.TextField(blank=True, default="")
    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    # Email reminder bookkeeping
    reminder_24h_sent_at = models.DateTimeField(null=True, blank=True)
    reminder_2h_sent_at = models.DateTimeField(null=True, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["start"]),
            models.Index(fields=["status"]),
            models.Index(fields=["provider", "start"]),
            models.Index(fields=["client", "start"]),
        ]
        constraints = [
            models.CheckConstraint(name="booking_end_after_start", condition=Q(end__gt=F("start"))),
        ]
        ordering = ["-start", "id"]

    def __str__(self) -> str:
        return f"{self.reference} {self.client_name} @ {self.start.isoformat()} ({self.status})"

    @property
    def reference(self) -> str:
        return f"BK-{self.pk:06d}" if self.pk else "BK-new"

    @property
    def client_name(self) -> str:
        if self.guest_name:
            return self.guest_name
        return str(self.client) if self.client_id else ""

    @property
    def recipient_email(self) -> str:
        if self.client_id and self.client.email:
            return self.client.email
        return self.guest_email

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def appointment_type(self) -> str:
        return AppointmentType.ONLINE if self.is_online else AppointmentType.IN_PERSON


class NotificationLog(models.Model):
    """
    One outbound message about a booking. Context columns are copied in
    before a booking is deleted so the log stays readable.
    """

    class Channel(models.TextChoices):
        EMAIL = "EMAIL", "Email"
        WHATSAPP = "WHATSAPP", "WhatsApp"

    class Status(models.TextChoices):
        SENT = "SENT", "Sent"
        FAILED = "FAILED", "Failed"
        SKIPPED = "SKIPPED", "Skipped"

    booking = models.ForeignKey(
        Booking, null=True, blank=True, on_delete=models.SET_NULL, related_name="notifications"
    )
    channel = models.CharField(max_length=16, choices=Channel.choices, default=Channel.EMAIL)
    kind = models.CharField(max_length=32)
    recipient = models.CharField(max_length=255, blank=True, default="")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.SENT)
    error = models.TextField(blank=True, default="")

    booking_reference = models.CharField(max_length=32, blank=True, default="")
    provider_name = models.CharField(max_length=200, blank=True, default="")
    client_name = models.CharField(max_length=200, blank=True, default="")
    service_name = models.CharField(max_length=200, blank=True, default="")
    appointment_time = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["booking", "kind"])]

    def __str__(self) -> str:
        return f"{self.kind} → {self.recipient} ({self.status})"
