import pytest
from django.core import mail

from apps.availability.exceptions import (
    AvailabilityConflictError,
    AvailabilityPermissionError,
    AvailabilityValidationError,
    InvalidTransitionError,
)
from apps.availability.models import Availability, AvailabilityStatus, CalculatedSlot, SlotStatus
from apps.availability.recurrence import RecurrenceOption, create_recurrence_pattern
from apps.availability.services import (
    Scope,
    accept_availability,
    accept_series,
    cancel_availability,
    create_availability,
    reject_availability,
    update_availability,
    workflow_statistics,
)


@pytest.fixture
def payload(provider, service, at):
    def _payload(**extra):
        data = {
            "provider": provider,
            "start": at(1, 9),
            "end": at(1, 11),
            "services": [{"service": service}],
        }
        data.update(extra)
        return data
    return _payload


@pytest.mark.django_db
def test_provider_creates_accepted_window_with_slots(provider_user, payload):
    [av] = create_availability(provider_user, payload())
    assert av.status == AvailabilityStatus.ACCEPTED
    assert av.accepted_by == provider_user
    assert av.slots.count() == 4  # 30-minute default duration over two hours
    assert av.service_configs.get().price == av.service_configs.get().service.default_price


@pytest.mark.django_db
def test_organization_proposal_stays_pending_and_emails_provider(
    manager_user, organization, payload, django_capture_on_commit_callbacks
):
    with django_capture_on_commit_callbacks(execute=True):
        [av] = create_availability(manager_user, payload(organization=organization))

    assert av.status == AvailabilityStatus.PENDING
    assert av.is_proposal
    assert av.slots.count() == 0
    assert len(mail.outbox) == 1
    assert mail.outbox[0].to == ["naidoo@clinic.example"]
    assert mail.outbox[0].subject == "New Availability Proposal from Sunrise Clinic"


@pytest.mark.django_db
def test_manager_needs_an_organization(manager_user, payload):
    with pytest.raises(AvailabilityPermissionError):
        create_availability(manager_user, payload())


@pytest.mark.django_db
def test_at_least_one_service_required(provider_user, payload):
    with pytest.raises(AvailabilityValidationError) as exc:
        create_availability(provider_user, payload(services=[]))
    assert exc.value.message == "At least one service must be selected"


@pytest.mark.django_db
def test_custom_interval_needs_an_interval(provider_user, payload):
    with pytest.raises(AvailabilityValidationError):
        create_availability(provider_user, payload(scheduling_rule="CUSTOM_INTERVAL"))


@pytest.mark.django_db
def test_recurring_window_creates_one_row_per_occurrence(provider_user, payload, at):
    start = at(1, 9)
    pattern = create_recurrence_pattern(RecurrenceOption.WEEKLY, start, end_date=at(22, 9).date())
    rows = create_availability(provider_user, payload(recurrence_pattern=pattern))

    assert len(rows) == 4
    assert len({r.series_id for r in rows}) == 1 and rows[0].series_id is not None
    assert all(r.is_recurring and r.recurrence_pattern == pattern for r in rows)
    assert [(r.start - rows[0].start).days for r in rows] == [0, 7, 14, 21]
    assert CalculatedSlot.objects.filter(availability__in=rows).count() == 16


@pytest.mark.django_db
def test_overlap_is_a_conflict(provider_user, payload, at):
    create_availability(provider_user, payload())
    with pytest.raises(AvailabilityConflictError) as exc:
        create_availability(provider_user, payload(start=at(1, 10), end=at(1, 12)))
    assert exc.value.status_code == 409
    assert exc.value.code == "availability_overlap"


# ---- proposal workflow ----

@pytest.mark.django_db
def test_provider_accepts_proposal(
    provider_user, manager_user, organization, payload, django_capture_on_commit_callbacks
):
    [av] = create_availability(manager_user, payload(organization=organization))
    mail.outbox.clear()

    with django_capture_on_commit_callbacks(execute=True):
        result = accept_availability(provider_user, av)

    av.refresh_from_db()
    assert av.status == AvailabilityStatus.ACCEPTED
    assert av.accepted_by == provider_user
    assert result["slots_generated"] == 4
    assert set(mail.outbox[0].to) == {"clinic_mgr@example.com", "desk@sunrise.example"}


@pytest.mark.django_db
def test_only_the_provider_responds_to_proposals(manager_user, provider_user, organization, payload):
    [av] = create_availability(manager_user, payload(organization=organization))
    with pytest.raises(AvailabilityPermissionError):
        accept_availability(manager_user, av)

    reject_availability(provider_user, av, "Clashes with surgery")
    av.refresh_from_db()
    assert av.status == AvailabilityStatus.REJECTED
    assert av.rejection_reason == "Clashes with surgery"

    with pytest.raises(InvalidTransitionError):
        reject_availability(provider_user, av)


@pytest.mark.django_db
def test_accept_series_future_only(provider_user, manager_user, organization, payload, at):
    pattern = create_recurrence_pattern(RecurrenceOption.DAILY, at(1, 9), end_date=at(3, 9).date())
    rows = create_availability(manager_user, payload(organization=organization, recurrence_pattern=pattern))
    assert len(rows) == 3

    result = accept_series(provider_user, rows[1], mode="future_only")
    assert result == {"accepted": 3, "slots_generated": 12, "mode": "future_only"}
    assert set(Availability.objects.values_list("status", flat=True)) == {AvailabilityStatus.ACCEPTED}

    with pytest.raises(InvalidTransitionError):
        accept_series(provider_user, rows[0])


# ---- update ----

@pytest.mark.django_db
def test_update_cannot_exclude_a_booking(provider_user, payload, at):
    [av] = create_availability(provider_user, payload())
    av.slots.filter(start=at(1, 10)).update(status=SlotStatus.BOOKED)

    with pytest.raises(AvailabilityConflictError) as exc:
        update_availability(provider_user, av, {"start": at(1, 10, 30)})
    assert exc.value.message == "Cannot modify availability: new time range would exclude existing bookings"

    # extending the window around the booking is fine and keeps it
    [updated] = update_availability(provider_user, av, {"end": at(1, 12)})
    assert updated.end == at(1, 12)
    assert updated.slots.filter(status=SlotStatus.BOOKED, start=at(1, 10)).count() == 1
    assert updated.slots.count() == 6


@pytest.mark.django_db
def test_update_future_scope_shifts_later_occurrences(provider_user, payload, at):
    pattern = create_recurrence_pattern(RecurrenceOption.DAILY, at(1, 9), end_date=at(3, 9).date())
    rows = create_availability(provider_user, payload(recurrence_pattern=pattern))

    updated = update_availability(provider_user, rows[1], {"start": at(2, 8)}, scope=Scope.FUTURE)
    assert [u.id for u in updated] == [rows[1].id, rows[2].id]

    starts = list(Availability.objects.order_by("start").values_list("start", flat=True))
    assert starts == [at(1, 9), at(2, 8), at(3, 8)]


@pytest.mark.django_db
def test_update_all_rechecks_series_members_against_each_other(provider_user, payload, at):
    pattern = create_recurrence_pattern(RecurrenceOption.DAILY, at(1, 9), end_date=at(3, 9).date())
    rows = create_availability(provider_user, payload(recurrence_pattern=pattern))

    # 09:00 to 10:00 the next day runs into the following occurrence
    with pytest.raises(AvailabilityConflictError) as exc:
        update_availability(provider_user, rows[0], {"end": at(2, 10)}, scope=Scope.ALL)
    assert exc.value.code == "availability_overlap"
    assert "Occurrences 1 and 2 overlap each other" in exc.value.errors
    assert "Occurrences 2 and 3 overlap each other" in exc.value.errors

    ends = list(Availability.objects.order_by("start").values_list("end", flat=True))
    assert ends == [at(1, 11), at(2, 11), at(3, 11)]


@pytest.mark.django_db
def test_update_cannot_drop_a_booked_service(provider_user, payload, at):
    from apps.services.models import Service

    [av] = create_availability(provider_user, payload())
    av.slots.filter(start=at(1, 9)).update(status=SlotStatus.BOOKED)
    other = Service.objects.create(name="Follow-up", default_duration=15)

    with pytest.raises(AvailabilityConflictError) as exc:
        update_availability(provider_user, av, {"services": [{"service": other}]})
    assert exc.value.code == "service_has_bookings"


# ---- cancel ----

@pytest.mark.django_db
def test_cancel_refused_while_booked(provider_user, payload, at):
    [av] = create_availability(provider_user, payload())
    av.slots.filter(start=at(1, 9)).update(status=SlotStatus.BOOKED)

    with pytest.raises(AvailabilityConflictError) as exc:
        cancel_availability(provider_user, av)
    assert exc.value.message == (
        "Cannot cancel availability with 1 existing booking(s). Cancel the bookings first."
    )


@pytest.mark.django_db
def test_cancel_series_removes_slots(provider_user, payload, at, django_capture_on_commit_callbacks):
    pattern = create_recurrence_pattern(RecurrenceOption.DAILY, at(1, 9), end_date=at(2, 9).date())
    rows = create_availability(provider_user, payload(recurrence_pattern=pattern))

    with django_capture_on_commit_callbacks(execute=True):
        cancelled = cancel_availability(provider_user, rows[0], scope=Scope.ALL, reason="Leave")

    assert len(cancelled) == 2
    assert set(Availability.objects.values_list("status", flat=True)) == {AvailabilityStatus.CANCELLED}
    assert CalculatedSlot.objects.count() == 0
    assert mail.outbox[0].subject == "Availability Cancelled"

    rows[0].refresh_from_db()
    with pytest.raises(InvalidTransitionError):
        cancel_availability(provider_user, rows[0])


@pytest.mark.django_db
def test_workflow_statistics(provider_user, manager_user, organization, provider, payload, at):
    create_availability(provider_user, payload())
    [proposal] = create_availability(
        manager_user, payload(organization=organization, start=at(2, 9), end=at(2, 10))
    )
    accept_availability(provider_user, proposal)
    create_availability(manager_user, payload(organization=organization, start=at(3, 9), end=at(3, 10)))

    stats = workflow_statistics(provider=provider)
    assert stats["total_proposals"] == 2
    assert stats["pending"] == 1 and stats["accepted"] == 1
    assert stats["slots_generated"] == 6
    assert stats["utilization_rate"] == 0.0
