# apps/availability/models.py
from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import F, Q


class AvailabilityStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    ACCEPTED = "ACCEPTED", "Accepted"
    REJECTED = "REJECTED", "Rejected"
    CANCELLED = "CANCELLED", "Cancelled"


# Allowed status moves; REJECTED and CANCELLED are terminal.
STATUS_TRANSITIONS = {
    AvailabilityStatus.PENDING: {
        AvailabilityStatus.ACCEPTED,
        AvailabilityStatus.REJECTED,
        AvailabilityStatus.CANCELLED,
    },
    AvailabilityStatus.ACCEPTED: {AvailabilityStatus.CANCELLED},
    AvailabilityStatus.REJECTED: set(),
    AvailabilityStatus.CANCELLED: set(),
}

# Availabilities that still occupy the provider's calendar
BLOCKING_STATUSES = (AvailabilityStatus.PENDING, AvailabilityStatus.ACCEPTED)


class SchedulingRule(models.TextChoices):
    CONTINUOUS = "CONTINUOUS", "Continuous"
    FIXED_INTERVAL = "FIXED_INTERVAL", "Fixed interval"
    CUSTOM_INTERVAL = "CUSTOM_INTERVAL", "Custom interval"


class BillingEntity(models.TextChoices):
    ORGANIZATION = "ORGANIZATION", "Organization"
    LOCATION = "LOCATION", "Location"
    PROVIDER = "PROVIDER", "Provider"


class SlotStatus(models.TextChoices):
    AVAILABLE = "AVAILABLE", "Available"
    BOOKED = "BOOKED", "Booked"
    BLOCKED = "BLOCKED", "Blocked"
    INVALID = "INVALID", "Invalid"


# ------------ QuerySet helpers ------------ #

class AvailabilityQuerySet(models.QuerySet):
    def blocking(self) -> "AvailabilityQuerySet":
        return self.filter(status__in=BLOCKING_STATUSES)

    def overlapping(self, start, end) -> "AvailabilityQuerySet":
        # half-open [start, end): touching windows do not overlap
        return self.filter(start__lt=end, end__gt=start)

    def in_series(self, series_id) -> "AvailabilityQuerySet":
        return self.filter(series_id=series_id)


class Availability(models.Model):
    """
    One concrete window on a provider's calendar. Recurring availability is
    stored as one row per occurrence; the rows share `series_id` and carry the
    same `recurrence_pattern`.
    """
    provider = models.ForeignKey(
        "providers.Provider", on_delete=models.CASCADE, related_name="availabilities"
    )
    organization = models.ForeignKey(
        "providers.Organization",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="availabilities",
    )
    location = models.ForeignKey(
        "providers.Location",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="availabilities",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        on_delete=models.SET_NULL,
        related_name="availabilities_created",
    )
    accepted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="availabilities_accepted",
    )
    accepted_at = models.DateTimeField(null=True, blank=True)

    start = models.DateTimeField()
    end = models.DateTimeField()

    is_recurring = models.BooleanField(default=False)
    recurrence_pattern = models.JSONField(null=True, blank=True)
    series_id = models.UUIDField(null=True, blank=True, db_index=True)

    scheduling_rule = models.CharField(
        max_length=20, choices=SchedulingRule.choices, default=SchedulingRule.CONTINUOUS
    )
    scheduling_interval = models.PositiveIntegerField(null=True, blank=True, help_text="Minutes")

    is_online_available = models.BooleanField(default=False)
    requires_confirmation = models.BooleanField(default=False)
    billing_entity = models.CharField(
        max_length=16, choices=BillingEntity.choices, default=BillingEntity.PROVIDER
    )

    status = models.CharField(
        max_length=16,
        choices=AvailabilityStatus.choices,
        default=AvailabilityStatus.PENDING,
        db_index=True,
    )
    rejection_reason = models.CharField(max_length=500, blank=True, default="")
    cancellation_reason = models.CharField(max_length=500, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = AvailabilityQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=["provider", "start"]),
            models.Index(fields=["status", "start"]),
        ]
        constraints = [
            models.CheckConstraint(
                name="availability_end_after_start",
                condition=Q(end__gt=F("start")),
            ),
        ]
        ordering = ["start", "id"]
        verbose_name_plural = "Availabilities"

    def __str__(self) -> str:
        return f"{self.provider} {self.start.isoformat()} → {self.end.isoformat()} ({self.status})"

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    @property
    def is_proposal(self) -> bool:
        return self.created_by_id is not None and self.created_by_id != self.provider.user_id

    def can_transition_to(self, status: str) -> bool:
        return status in STATUS_TRANSITIONS.get(self.status, set())


class ServiceAvailabilityConfig(models.Model):
    """Per-availability settings for one service."""
    availability = models.ForeignKey(
        Availability, on_delete=models.CASCADE, related_name="service_configs"
    )
    service = models.ForeignKey(
        "services.Service", on_delete=models.PROTECT, related_name="availability_configs"
    )
    duration = models.PositiveIntegerField(help_text="Minutes")
    price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    show_price = models.BooleanField(default=True)
    is_online_available = models.BooleanField(default=False)
    is_in_person = models.BooleanField(default=True)
    location = models.ForeignKey(
        "providers.Location", null=True, blank=True, on_delete=models.SET_NULL, related_name="+"
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["availability", "service"], name="uniq_service_per_availability"
            ),
            models.CheckConstraint(name="service_config_duration_positive", condition=Q(duration__gt=0)),
        ]

    def __str__(self) -> str:
        return f"{self.service} ({self.duration}m) in #{self.availability_id}"


class CalculatedSlotQuerySet(models.QuerySet):
    def booked(self) -> "CalculatedSlotQuerySet":
        return self.filter(status=SlotStatus.BOOKED)

    def unbooked(self) -> "CalculatedSlotQuerySet":
        return self.exclude(status=SlotStatus.BOOKED)

    def overlapping(self, start, end) -> "CalculatedSlotQuerySet":
        return self.filter(start__lt=end, end__gt=start)


class CalculatedSlot(models.Model):
    availability = models.ForeignKey(
        Availability, on_delete=models.CASCADE, related_name="slots"
    )
    service = models.ForeignKey(
        "services.Service", on_delete=models.PROTECT, related_name="slots"
    )
    service_config = models.ForeignKey(
        ServiceAvailabilityConfig, null=True, on_delete=models.SET_NULL, related_name="slots"
    )
    start = models.DateTimeField()
    end = models.DateTimeField()
    duration = models.PositiveIntegerField(help_text="Minutes")
    price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    is_online_available = models.BooleanField(default=False)
    status = models.CharField(
        max_length=16, choices=SlotStatus.choices, default=SlotStatus.AVAILABLE, db_index=True
    )
    version = models.PositiveIntegerField(default=1)
    last_calculated = models.DateTimeField(auto_now=True)

    objects = CalculatedSlotQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=["availability", "start"]),
            models.Index(fields=["status", "start"]),
            models.Index(fields=["service", "start"]),
        ]
        constraints = [
            models.CheckConstraint(name="slot_end_after_start", condition=Q(end__gt=F("start"))),
        ]
        ordering = ["start", "id"]

    def __str__(self) -> str:
        return f"{self.service} {self.start.isoformat()} ({self.status})"

    @property
    def provider_id(self) -> int:
        return self.availability.provider_id

    def overlaps(self, other_start, other_end) -> bool:
        return self.start < other_end and other_start < self.end
