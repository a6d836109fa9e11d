# apps/bookings/tasks.py
from __future__ import annotations

import logging
from datetime import timedelta
from email.utils import formatdate
from typing import Optional

from celery import shared_task
from django.conf import settings
from django.core.mail import EmailMessage
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string
from django.utils import timezone

from .ics import _location_text, calendar_text_for_bookings
from .models import ACTIVE_STATUSES, Booking, BookingStatus, NotificationLog

logger = logging.getLogger(__name__)

# kinds that also go to the provider
PROVIDER_COPIES = {"created", "cancelled"}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _render_subject_and_body(template_name: str, ctx: dict) -> tuple[str, str]:
    """Render 'Subject: ...' on line 1, rest is body; fallback if template missing."""
    try:
        raw = render_to_string(f"emails/bookings/{template_name}.txt", ctx)
    except TemplateDoesNotExist:
        return "Booking update", "Your booking was updated."
    lines = raw.splitlines()
    subject = (lines[0].replace("Subject:", "").strip() if lines else "") or "Booking update"
    body = "\n".join(lines[1:]).strip() or "Your booking was updated."
    return subject, body


def _context_for(booking: Booking, kind: str) -> dict:
    start_local = timezone.localtime(booking.start)
    end_local = timezone.localtime(booking.end)
    return {
        "kind": kind,
        "reference": booking.reference,
        "client_name": booking.client_name or "there",
        "provider_name": booking.provider.name,
        "service_name": booking.service.name,
        "start_local": start_local.strftime("%a, %d %b %Y %H:%M"),
        "end_local": end_local.strftime("%H:%M"),
        "tzname": start_local.tzname() or "UTC",
        "location": _location_text(booking) or "To be confirmed",
        "status": booking.get_status_display(),
        "notes": booking.notes,
    }


def _log(booking: Booking, kind: str, recipient: str, status: str, error: str = "") -> NotificationLog:
    return NotificationLog.objects.create(
        booking=booking,
        channel=NotificationLog.Channel.EMAIL,
        kind=kind,
        recipient=recipient,
        status=status,
        error=error,
        booking_reference=booking.reference,
        provider_name=booking.provider.name,
        client_name=booking.client_name,
        service_name=booking.service.name,
        appointment_time=booking.start,
    )

# ---------------------------------------------------------------------------
# Outbound mail with ICS attachment
# ---------------------------------------------------------------------------

@shared_task(bind=True, max_retries=2)
def send_booking_email(
    self,
    booking_id: int,
    kind: str = "created",                      # created | confirmed | cancelled | declined | reminder
    to_override: Optional[list[str]] = None,    # custom recipients (tests/admin)
):
    """Email the client (and the provider for some kinds) with an ICS attachment."""
    if not getattr(settings, "NOTIFY_BOOKINGS", True):
        return {"skipped": True, "reason": "notifications disabled"}

    booking = Booking.objects.select_related(
        "provider__user", "service", "client", "location"
    ).get(id=booking_id)

    to_list = to_override or [e for e in [booking.recipient_email] if e]
    if not to_override and kind in PROVIDER_COPIES and booking.provider.contact_email:
        to_list.append(booking.provider.contact_email)
    to_list = list(dict.fromkeys(to_list))

    if not to_list:
        _log(booking, kind, "", NotificationLog.Status.SKIPPED, "no recipient email")
        return {"skipped": True, "reason": "no recipient email", "booking": booking.id}

    subject, body = _render_subject_and_body(kind, _context_for(booking, kind))
    msg = EmailMessage(
        subject=subject,
        body=body,
        from_email=getattr(settings, "DEFAULT_FROM_EMAIL", "no-reply@medbookings.local"),
        to=to_list,
    )

    method = "CANCEL" if booking.status == BookingStatus.CANCELLED else "REQUEST"
    msg.attach(
        filename=f"booking-{booking.id}.ics",
        content=calendar_text_for_bookings([booking], method=method).encode("utf-8"),
        mimetype=f"text/calendar; charset=UTF-8; method={method}",
    )
    msg.extra_headers = {
        "Date": formatdate(localtime=True),
        "X-Entity-Ref-ID": booking.reference,
    }

    try:
        msg.send(fail_silently=False)
    except Exception as exc:
        logger.exception("Sending %s email for %s failed", kind, booking.reference)
        for rcpt in to_list:
            _log(booking, kind, rcpt, NotificationLog.Status.FAILED, str(exc))
        return {"sent": False, "error": str(exc), "kind": kind, "booking": booking.id}

    for rcpt in to_list:
        _log(booking, kind, rcpt, NotificationLog.Status.SENT)
    return {"sent": True, "to": to_list, "kind": kind, "booking": booking.id}

# ---------------------------------------------------------------------------
# Reminder sweeper (24h & 2h)
# ---------------------------------------------------------------------------

REMINDERS = (
    ("24h", 24, "reminder_24h_sent_at"),
    ("2h", 2, "reminder_2h_sent_at"),
)


def due_reminders(hours_ahead: int, sent_field: str, window_minutes: Optional[int] = None, now=None):
    """Active bookings starting within ±window of now + hours_ahead, not yet reminded."""
    if window_minutes is None:
        window_minutes = getattr(settings, "REMINDER_WINDOW_MINUTES", 5)
    now = now or timezone.now()
    target = now + timedelta(hours=hours_ahead)
    return (
        Booking.objects.select_related("provider", "service", "client")
        .filter(
            status__in=ACTIVE_STATUSES,
            start__gte=target - timedelta(minutes=window_minutes),
            start__lt=target + timedelta(minutes=window_minutes),
            **{f"{sent_field}__isnull": True},
        )
        .order_by("start")
    )


@shared_task(bind=True, max_retries=1)
def send_due_reminders(self):
    """Send 24h & 2h reminders once, marking timestamps to avoid duplicates."""
    totals = {label: 0 for label, _, _ in REMINDERS}

    for label, hours, sent_field in REMINDERS:
        for booking in due_reminders(hours, sent_field):
            if not booking.recipient_email:
                continue
            send_booking_email.delay(booking.id, kind="reminder")
            setattr(booking, sent_field, timezone.now())
            booking.save(update_fields=[sent_field])
            totals[label] += 1

    if any(totals.values()):
        logger.info("Sent booking reminders: %s", totals)
    return totals
