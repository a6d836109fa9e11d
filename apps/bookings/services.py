# apps/bookings/services.py
"""
Booking flow on top of calculated slots.

A booking copies its window, duration and price from the slot. The slot row
is locked with select_for_update() while it flips to BOOKED so two clients
racing for the same slot cannot both win.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from apps.availability.models import AvailabilityStatus, CalculatedSlot, SlotStatus
from apps.availability.slots import block_overlapping, release_overlapping_blocks
from apps.providers.access import is_calendar_manager, is_platform_admin, is_provider_user

from .exceptions import (
    BookingError,
    BookingPermissionError,
    InvalidBookingTransition,
    PastSlotError,
    SlotNotFoundError,
    SlotUnavailableError,
)
from .models import AppointmentType, Booking, BookingStatus, NotificationLog, TERMINAL_STATUSES

logger = logging.getLogger(__name__)


# ---- helpers ----

def _notify(booking_id: int, kind: str) -> None:
    """Queue the email after commit; a mail failure never undoes the booking."""
    from .tasks import send_booking_email

    def _send():
        try:
            send_booking_email.delay(booking_id, kind)
        except Exception:
            logger.exception("Booking %s notification failed for #%s", kind, booking_id)

    transaction.on_commit(_send)


def _is_staff_for(actor, booking: Booking) -> bool:
    """Provider of the booking, a platform admin, or a manager of the slot's organization."""
    if is_provider_user(actor, booking.provider) or is_platform_admin(actor):
        return True
    slot = booking.slot
    org = slot.availability.organization if slot and slot.availability_id else None
    return is_calendar_manager(actor, org)


def _is_client(actor, booking: Booking) -> bool:
    return bool(getattr(actor, "is_authenticated", False) and booking.client_id == actor.id)


def can_view_booking(actor, booking: Booking) -> bool:
    return _is_client(actor, booking) or _is_staff_for(actor, booking)


def _require_staff(actor, booking: Booking) -> None:
    if not _is_staff_for(actor, booking):
        raise BookingPermissionError()


def _release_slot(booking: Booking) -> None:
    if not booking.slot_id:
        return
    slot = (
        CalculatedSlot.objects.select_for_update()
        .select_related("availability")
        .get(id=booking.slot_id)
    )
    if slot.availability.status == AvailabilityStatus.CANCELLED:
        slot.status = SlotStatus.INVALID
    else:
        slot.status = SlotStatus.AVAILABLE
    slot.save(update_fields=["status", "last_calculated"])
    if slot.status == SlotStatus.AVAILABLE:
        release_overlapping_blocks(slot)


# ---- slot search ----

def search_available_slots(
    provider=None,
    service=None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    online_only: bool = False,
    limit: Optional[int] = 50,
) -> QuerySet:
    now = timezone.now()
    qs = (
        CalculatedSlot.objects.select_related("availability__provider", "service", "service_config")
        .filter(
            status=SlotStatus.AVAILABLE,
            availability__status=AvailabilityStatus.ACCEPTED,
            availability__provider__is_active=True,
            start__gt=now,
        )
        .order_by("start", "id")
    )
    if provider is not None:
        qs = qs.filter(availability__provider=provider)
    if service is not None:
        qs = qs.filter(service=service)
    if date_from:
        qs = qs.filter(start__gte=date_from)
    if date_to:
        qs = qs.filter(start__lt=date_to)
    if online_only:
        qs = qs.filter(is_online_available=True)
    if limit:
        qs = qs[:limit]
    return qs


# ---- create ----

def create_booking(
    slot_id: int,
    client=None,
    guest: Optional[dict] = None,
    appointment_type: str = AppointmentType.IN_PERSON,
    notes: str = "",
) -> Booking:
    guest = guest or {}
    client = client if getattr(client, "is_authenticated", False) else None
    guest_name = (guest.get("name") or "").strip()
    if client is not None and not guest_name:
        guest_name = str(client)
    if not guest_name:
        raise BookingError("Guest name is required", code="guest_name_required")
    guest_email = (guest.get("email") or (client.email if client else "") or "").strip()
    guest_whatsapp = (guest.get("whatsapp") or (getattr(client, "phone", "") if client else "") or "").strip()

    online = appointment_type == AppointmentType.ONLINE

    with transaction.atomic():
        try:
            slot = (
                CalculatedSlot.objects.select_for_update()
                .select_related("availability__provider", "service_config", "service")
                .get(id=slot_id)
            )
        except CalculatedSlot.DoesNotExist:
            raise SlotNotFoundError() from None

        # re-checked under the lock
        if slot.status != SlotStatus.AVAILABLE:
            raise SlotUnavailableError()
        if slot.availability.status != AvailabilityStatus.ACCEPTED:
            raise SlotUnavailableError("This slot is not open for booking")
        if slot.start <= timezone.now():
            raise PastSlotError()

        cfg = slot.service_config
        if online and not slot.is_online_available:
            raise BookingError("This slot cannot be booked online", code="online_unavailable")
        if not online and not (cfg and cfg.is_in_person):
            raise BookingError("This slot is only available online", code="in_person_unavailable")

        slot.status = SlotStatus.BOOKED
        slot.save(update_fields=["status", "last_calculated"])
        block_overlapping(slot)

        needs_confirmation = slot.availability.requires_confirmation
        booking = Booking.objects.create(
            slot=slot,
            provider=slot.availability.provider,
            service=slot.service,
            client=client,
            guest_name=guest_name,
            guest_email=guest_email,
            guest_whatsapp=guest_whatsapp,
            start=slot.start,
            end=slot.end,
            duration=slot.duration,
            price=slot.price,
            is_online=online,
            is_in_person=not online,
            location=(cfg.location or slot.availability.location) if (cfg and not online) else None,
            status=BookingStatus.PENDING if needs_confirmation else BookingStatus.CONFIRMED,
            confirmed_at=None if needs_confirmation else timezone.now(),
            notes=notes or "",
        )

    logger.info("Booked slot %s as %s (%s)", slot.id, booking.reference, booking.status)
    _notify(booking.id, "created")
    return booking


# ---- status moves ----

def confirm_booking(actor, booking: Booking) -> Booking:
    _require_staff(actor, booking)
    if booking.status != BookingStatus.PENDING:
        raise InvalidBookingTransition("This booking cannot be confirmed")
    booking.status = BookingStatus.CONFIRMED
    booking.confirmed_at = timezone.now()
    booking.save(update_fields=["status", "confirmed_at", "updated_at"])
    _notify(booking.id, "confirmed")
    return booking


def _append_note(booking: Booking, note: str) -> None:
    booking.notes = f"{booking.notes}\n{note}".strip() if booking.notes else note


def decline_booking(actor, booking: Booking, reason: str = "") -> Booking:
    _require_staff(actor, booking)
    if booking.status != BookingStatus.PENDING:
        raise InvalidBookingTransition("This booking cannot be declined")
    with transaction.atomic():
        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = timezone.now()
        _append_note(booking, f"Declined: {reason}" if reason else "Declined by service provider")
        booking.save(update_fields=["status", "cancelled_at", "notes", "updated_at"])
        _release_slot(booking)
    _notify(booking.id, "declined")
    return booking


def cancel_booking(actor, booking: Booking, reason: str = "") -> Booking:
    if not (_is_client(actor, booking) or _is_staff_for(actor, booking)):
        raise BookingPermissionError()
    if booking.status in TERMINAL_STATUSES:
        raise InvalidBookingTransition(f"Booking is already {booking.get_status_display().lower()}")
    with transaction.atomic():
        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = timezone.now()
        if reason:
            _append_note(booking, f"Cancelled: {reason}")
        booking.save(update_fields=["status", "cancelled_at", "notes", "updated_at"])
        _release_slot(booking)
    _notify(booking.id, "cancelled")
    return booking


def _close_past_booking(actor, booking: Booking, status: str) -> Booking:
    _require_staff(actor, booking)
    if booking.status != BookingStatus.CONFIRMED:
        raise InvalidBookingTransition("Only confirmed bookings can be closed")
    if booking.start > timezone.now():
        raise InvalidBookingTransition("This booking has not started yet")
    booking.status = status
    booking.save(update_fields=["status", "updated_at"])
    return booking


def complete_booking(actor, booking: Booking) -> Booking:
    return _close_past_booking(actor, booking, BookingStatus.COMPLETED)


def mark_no_show(actor, booking: Booking) -> Booking:
    return _close_past_booking(actor, booking, BookingStatus.NO_SHOW)


# ---- edit / delete ----

UPDATABLE_FIELDS = ("guest_name", "guest_email", "guest_whatsapp", "location", "notes")


def update_booking(actor, booking: Booking, data: dict) -> Booking:
    if not (_is_client(actor, booking) or _is_staff_for(actor, booking)):
        raise BookingPermissionError()
    if booking.status in TERMINAL_STATUSES:
        raise InvalidBookingTransition("Closed bookings cannot be edited")

    changed = []
    for name in UPDATABLE_FIELDS:
        if name in data:
            setattr(booking, name, data[name])
            changed.append(name)

    kind = data.get("appointment_type")
    if kind:
        slot = booking.slot
        cfg = slot.service_config if slot else None
        if kind == AppointmentType.ONLINE and not (slot and slot.is_online_available):
            raise BookingError("This slot cannot be booked online", code="online_unavailable")
        if kind == AppointmentType.IN_PERSON and not (cfg and cfg.is_in_person):
            raise BookingError("This slot is only available online", code="in_person_unavailable")
        booking.is_online = kind == AppointmentType.ONLINE
        booking.is_in_person = not booking.is_online
        if booking.is_online:
            booking.location = None
        changed += ["is_online", "is_in_person", "location"]

    if not booking.guest_name.strip():
        raise BookingError("Guest name is required", code="guest_name_required")
    if changed:
        booking.save(update_fields=sorted(set(changed)) + ["updated_at"])
    return booking


def delete_booking(actor, booking: Booking) -> str:
    """
    I copy the booking's context into its notification logs, free the slot
    and delete the row. Returns the booking reference.
    """
    _require_staff(actor, booking)
    reference = booking.reference
    with transaction.atomic():
        NotificationLog.objects.filter(booking=booking).update(
            booking_reference=reference,
            provider_name=booking.provider.name,
            client_name=booking.client_name,
            service_name=booking.service.name,
            appointment_time=booking.start,
        )
        if booking.status not in TERMINAL_STATUSES:
            _release_slot(booking)
        booking.delete()
    logger.info("Deleted booking %s", reference)
    return reference
