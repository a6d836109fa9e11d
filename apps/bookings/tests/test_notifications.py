from datetime import timedelta
from io import StringIO

import pytest
from django.core import mail
from django.core.management import call_command
from django.test import override_settings
from django.utils import timezone

from apps.bookings.ics import _ics_escape, calendar_text_for_bookings
from apps.bookings.models import Booking, BookingStatus, NotificationLog
from apps.bookings.services import create_booking
from apps.bookings.tasks import send_booking_email, send_due_reminders

GUEST = {"name": "Lerato Dube", "email": "lerato@example.com"}


@pytest.fixture
def booking(first_slot):
    return create_booking(first_slot.id, guest=GUEST, notes="Bring referral; letter, please")


def _move_to(booking, hours_ahead):
    start = timezone.now() + timedelta(hours=hours_ahead)
    Booking.objects.filter(id=booking.id).update(start=start, end=start + timedelta(minutes=30))


# ---- ICS ----

def test_ics_escape():
    assert _ics_escape("a,b;c\\d\ne") == "a\\,b\\;c\\\\d\\ne"
    assert _ics_escape(None) == ""


@pytest.mark.django_db
def test_calendar_text_for_booking(booking):
    text = calendar_text_for_bookings([booking])
    assert text.startswith("BEGIN:VCALENDAR\r\n")
    assert "METHOD:PUBLISH\r\n" in text
    assert f"UID:booking-{booking.id}@medbookings\r\n" in text
    assert "SUMMARY:Consultation with Dr Naidoo\r\n" in text
    assert "STATUS:CONFIRMED\r\n" in text
    assert "LOCATION:Sunrise Rosebank\\, 1 Main Rd\r\n" in text
    assert "Notes: Bring referral\\; letter\\, please" in text
    assert text.endswith("END:VCALENDAR\r\n")


# ---- email task ----

@pytest.mark.django_db
def test_created_email_goes_to_client_and_provider(booking):
    result = send_booking_email(booking.id, "created")

    assert result["sent"] is True
    msg = mail.outbox[-1]
    assert msg.to == ["lerato@example.com", "naidoo@clinic.example"]
    assert msg.subject == "Booking received: Consultation with Dr Naidoo"
    assert msg.attachments[0][0] == f"booking-{booking.id}.ics"
    assert set(
        NotificationLog.objects.filter(booking=booking, kind="created").values_list("status", flat=True)
    ) == {NotificationLog.Status.SENT}
    assert NotificationLog.objects.filter(booking=booking).count() == 2


@pytest.mark.django_db
def test_cancelled_email_carries_cancel_method(booking):
    booking.status = BookingStatus.CANCELLED
    booking.save()
    send_booking_email(booking.id, "cancelled")
    assert "method=CANCEL" in mail.outbox[-1].attachments[0][2]


@pytest.mark.django_db
@override_settings(NOTIFY_BOOKINGS=False)
def test_notifications_can_be_switched_off(booking):
    assert send_booking_email(booking.id, "created") == {"skipped": True, "reason": "notifications disabled"}
    assert mail.outbox == []


@pytest.mark.django_db
def test_missing_recipient_is_logged_as_skipped(first_slot):
    booking = create_booking(first_slot.id, guest={"name": "No Mail", "whatsapp": "+27821234567"})
    result = send_booking_email(booking.id, "confirmed")
    assert result["skipped"] is True
    log = NotificationLog.objects.get(booking=booking)
    assert log.status == NotificationLog.Status.SKIPPED


@pytest.mark.django_db
def test_mail_failure_is_logged_not_raised(booking, monkeypatch):
    def boom(self, fail_silently=False):
        raise ConnectionRefusedError("smtp down")

    monkeypatch.setattr("django.core.mail.EmailMessage.send", boom)
    result = send_booking_email(booking.id, "confirmed")

    assert result["sent"] is False
    log = NotificationLog.objects.get(booking=booking)
    assert log.status == NotificationLog.Status.FAILED
    assert "smtp down" in log.error


# ---- reminders ----

@pytest.mark.django_db
def test_due_reminders_sent_once(booking):
    _move_to(booking, 24)

    assert send_due_reminders() == {"24h": 1, "2h": 0}
    assert mail.outbox[-1].subject.startswith("Reminder: Consultation with Dr Naidoo")
    booking.refresh_from_db()
    assert booking.reminder_24h_sent_at is not None

    assert send_due_reminders() == {"24h": 0, "2h": 0}


@pytest.mark.django_db
def test_cancelled_bookings_get_no_reminder(booking):
    _move_to(booking, 2)
    Booking.objects.filter(id=booking.id).update(status=BookingStatus.CANCELLED)
    assert send_due_reminders() == {"24h": 0, "2h": 0}


@pytest.mark.django_db
def test_reminder_command_dry_run(booking):
    _move_to(booking, 2)
    out = StringIO()
    call_command("send_due_reminders", "--dry-run", stdout=out)

    assert f"[DRY RUN] would send 2h reminder for {booking.reference}" in out.getvalue()
    assert mail.outbox == []
    booking.refresh_from_db()
    assert booking.reminder_2h_sent_at is None


@pytest.mark.django_db
def test_reminder_command_sends_selected_kind(booking):
    _move_to(booking, 2)
    out = StringIO()
    call_command("send_due_reminders", "--kind", "2h", stdout=out)

    assert "2h: 1 reminder(s)" in out.getvalue()
    assert len(mail.outbox) == 1
    booking.refresh_from_db()
    assert booking.reminder_2h_sent_at is not None
