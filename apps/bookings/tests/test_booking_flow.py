from datetime import timedelta

import pytest
from django.core import mail
from django.utils import timezone

from apps.availability.models import CalculatedSlot, SlotStatus
from apps.bookings.exceptions import (
    BookingError,
    BookingPermissionError,
    InvalidBookingTransition,
    PastSlotError,
    SlotNotFoundError,
    SlotUnavailableError,
)
from apps.bookings.models import Booking, BookingStatus, NotificationLog
from apps.bookings.services import (
    cancel_booking,
    complete_booking,
    confirm_booking,
    create_booking,
    decline_booking,
    delete_booking,
    mark_no_show,
    search_available_slots,
    update_booking,
)

GUEST = {"name": "Lerato Dube", "email": "lerato@example.com"}


@pytest.mark.django_db
def test_guest_booking_copies_the_slot(first_slot, location):
    booking = create_booking(first_slot.id, guest=GUEST)

    assert booking.status == BookingStatus.CONFIRMED
    assert booking.confirmed_at is not None
    assert (booking.start, booking.end, booking.duration) == (first_slot.start, first_slot.end, 30)
    assert str(booking.price) == "450.00"
    assert booking.location == location
    assert booking.client is None and booking.client_name == "Lerato Dube"
    assert booking.reference == f"BK-{booking.id:06d}"

    first_slot.refresh_from_db()
    assert first_slot.status == SlotStatus.BOOKED


@pytest.mark.django_db
def test_signed_in_client_fills_contact_from_account(first_slot, client_user):
    booking = create_booking(first_slot.id, client=client_user, appointment_type="online")
    assert booking.client == client_user
    assert booking.guest_name == "Pat Client"
    assert booking.recipient_email == "patient_p@example.com"
    assert booking.is_online and booking.location is None


@pytest.mark.django_db
def test_window_requiring_confirmation_starts_pending(open_window, first_slot):
    open_window.requires_confirmation = True
    open_window.save()
    booking = create_booking(first_slot.id, guest=GUEST)
    assert booking.status == BookingStatus.PENDING
    assert booking.confirmed_at is None


@pytest.mark.django_db
def test_slot_cannot_be_booked_twice(first_slot):
    create_booking(first_slot.id, guest=GUEST)
    with pytest.raises(SlotUnavailableError) as exc:
        create_booking(first_slot.id, guest={"name": "Second", "email": "second@example.com"})
    assert exc.value.status_code == 409
    assert exc.value.message == "This slot is no longer available"
    assert Booking.objects.count() == 1


@pytest.mark.django_db
def test_booking_errors(first_slot):
    with pytest.raises(SlotNotFoundError):
        create_booking(999999, guest=GUEST)
    with pytest.raises(BookingError) as exc:
        create_booking(first_slot.id, guest={"email": "x@example.com"})
    assert exc.value.code == "guest_name_required"

    first_slot.start = timezone.now() - timedelta(minutes=5)
    first_slot.end = first_slot.start + timedelta(minutes=30)
    first_slot.save()
    with pytest.raises(PastSlotError):
        create_booking(first_slot.id, guest=GUEST)


@pytest.mark.django_db
def test_online_needs_an_online_slot(first_slot):
    CalculatedSlot.objects.filter(id=first_slot.id).update(is_online_available=False)
    with pytest.raises(BookingError) as exc:
        create_booking(first_slot.id, guest=GUEST, appointment_type="online")
    assert exc.value.code == "online_unavailable"


@pytest.mark.django_db
def test_search_lists_only_future_open_slots(provider, open_window, first_slot):
    before = search_available_slots(provider=provider)
    assert len(before) == 4

    create_booking(first_slot.id, guest=GUEST)
    after = list(search_available_slots(provider=provider))
    assert first_slot not in after
    assert len(after) == 3
    assert len(search_available_slots(provider=provider, limit=2)) == 2


@pytest.mark.django_db
def test_search_date_from_is_inclusive(provider, open_window, first_slot):
    rows = list(search_available_slots(provider=provider, date_from=first_slot.start))
    assert rows[0] == first_slot
    assert len(rows) == 4

    later = list(search_available_slots(provider=provider, date_from=first_slot.end))
    assert first_slot not in later
    assert later[0].start == first_slot.end


# ---- lifecycle ----

@pytest.mark.django_db
def test_provider_confirms_pending_booking(open_window, first_slot, provider_user, django_capture_on_commit_callbacks):
    open_window.requires_confirmation = True
    open_window.save()
    booking = create_booking(first_slot.id, guest=GUEST)

    with django_capture_on_commit_callbacks(execute=True):
        confirm_booking(provider_user, booking)
    assert booking.status == BookingStatus.CONFIRMED
    assert mail.outbox[-1].subject.startswith("Booking confirmed: Consultation")

    with pytest.raises(InvalidBookingTransition):
        confirm_booking(provider_user, booking)


@pytest.mark.django_db
def test_clients_cannot_confirm(open_window, first_slot, client_user):
    open_window.requires_confirmation = True
    open_window.save()
    booking = create_booking(first_slot.id, client=client_user)
    with pytest.raises(BookingPermissionError):
        confirm_booking(client_user, booking)


@pytest.mark.django_db
def test_decline_reopens_the_slot(open_window, first_slot, provider_user):
    open_window.requires_confirmation = True
    open_window.save()
    booking = create_booking(first_slot.id, guest=GUEST)

    decline_booking(provider_user, booking)
    booking.refresh_from_db()
    assert booking.status == BookingStatus.CANCELLED
    assert booking.notes == "Declined by service provider"
    first_slot.refresh_from_db()
    assert first_slot.status == SlotStatus.AVAILABLE


@pytest.mark.django_db
def test_client_cancels_and_slot_reopens(first_slot, client_user, make_user):
    booking = create_booking(first_slot.id, client=client_user)

    stranger = make_user("nosy", "client")
    with pytest.raises(BookingPermissionError):
        cancel_booking(stranger, booking)

    cancel_booking(client_user, booking, reason="Feeling better")
    assert booking.status == BookingStatus.CANCELLED
    assert booking.notes == "Cancelled: Feeling better"
    first_slot.refresh_from_db()
    assert first_slot.status == SlotStatus.AVAILABLE

    with pytest.raises(InvalidBookingTransition):
        cancel_booking(client_user, booking)


@pytest.mark.django_db
def test_booking_blocks_overlapping_slots_of_other_services(open_window, first_slot):
    from apps.availability.models import ServiceAvailabilityConfig
    from apps.availability.slots import regenerate_slots
    from apps.services.models import Service

    long_visit = Service.objects.create(name="Extended consult", default_duration=60)
    ServiceAvailabilityConfig.objects.create(
        availability=open_window, service=long_visit, duration=60, is_in_person=True
    )
    regenerate_slots(open_window)
    short = CalculatedSlot.objects.get(availability=open_window, service__name="Consultation", start=first_slot.start)
    long_ = CalculatedSlot.objects.get(availability=open_window, service=long_visit, start=first_slot.start)

    booking = create_booking(short.id, guest=GUEST)
    long_.refresh_from_db()
    assert long_.status == SlotStatus.BLOCKED

    cancel_booking(open_window.provider.user, booking)
    long_.refresh_from_db()
    assert long_.status == SlotStatus.AVAILABLE


@pytest.mark.django_db
def test_complete_and_no_show_only_after_start(first_slot, provider_user):
    booking = create_booking(first_slot.id, guest=GUEST)
    with pytest.raises(InvalidBookingTransition):
        complete_booking(provider_user, booking)

    Booking.objects.filter(id=booking.id).update(start=timezone.now() - timedelta(hours=1))
    booking.refresh_from_db()
    complete_booking(provider_user, booking)
    assert booking.status == BookingStatus.COMPLETED
    with pytest.raises(InvalidBookingTransition):
        mark_no_show(provider_user, booking)


@pytest.mark.django_db
def test_no_show(first_slot, provider_user):
    booking = create_booking(first_slot.id, guest=GUEST)
    Booking.objects.filter(id=booking.id).update(start=timezone.now() - timedelta(minutes=1))
    booking.refresh_from_db()
    mark_no_show(provider_user, booking)
    booking.refresh_from_db()
    assert booking.status == BookingStatus.NO_SHOW


# ---- edit / delete ----

@pytest.mark.django_db
def test_update_switches_to_online(first_slot, client_user):
    booking = create_booking(first_slot.id, client=client_user)
    update_booking(client_user, booking, {"appointment_type": "online", "notes": "Video please"})
    booking.refresh_from_db()
    assert booking.is_online and not booking.is_in_person
    assert booking.location is None
    assert booking.notes == "Video please"

    with pytest.raises(BookingError):
        update_booking(client_user, booking, {"guest_name": "  "})


@pytest.mark.django_db
def test_delete_keeps_notification_history(first_slot, provider_user, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        booking = create_booking(first_slot.id, guest=GUEST)
    reference = booking.reference
    assert NotificationLog.objects.filter(booking=booking).exists()

    assert delete_booking(provider_user, booking) == reference
    assert not Booking.objects.exists()
    first_slot.refresh_from_db()
    assert first_slot.status == SlotStatus.AVAILABLE

    log = NotificationLog.objects.get(kind="created", recipient="lerato@example.com")
    assert log.booking is None
    assert log.booking_reference == reference
    assert log.service_name == "Consultation"
    assert log.client_name == "Lerato Dube"
