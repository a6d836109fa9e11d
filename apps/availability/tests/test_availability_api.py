import pytest
from django.urls import reverse

from apps.audit.models import AuditEvent
from apps.availability.models import Availability, AvailabilityStatus, SlotStatus


def _body(service, at, **extra):
    data = {
        "start": at(1, 9).isoformat(),
        "end": at(1, 11).isoformat(),
        "services": [{"service": service.id, "price": "350.00"}],
    }
    data.update(extra)
    return data


@pytest.mark.django_db
def test_provider_creates_and_lists_availability(api, provider_user, provider, service, at):
    client = api(provider_user)
    res = client.post(
        reverse("availability_api:availability-list"),
        _body(service, at, provider=provider.id),
        format="json",
    )
    assert res.status_code == 201, res.content
    [row] = res.json()
    assert row["status"] == "ACCEPTED"
    assert row["services"][0]["price"] == "350.00"
    assert AuditEvent.objects.filter(action="availability.create", object_id=str(row["id"])).exists()

    listing = client.get(reverse("availability_api:availability-list"), {"status": "ACCEPTED"})
    assert listing.status_code == 200
    assert [r["id"] for r in listing.json()["results"]] == [row["id"]]


@pytest.mark.django_db
def test_weekly_recurrence_from_payload(api, provider_user, provider, service, at):
    res = api(provider_user).post(
        reverse("availability_api:availability-list"),
        _body(
            service, at, provider=provider.id,
            recurrence={"option": "WEEKLY", "end_date": at(15, 9).date().isoformat()},
        ),
        format="json",
    )
    assert res.status_code == 201, res.content
    rows = res.json()
    assert len(rows) == 3
    assert rows[0]["recurrence_description"].startswith("Weekly on ")
    assert len({r["series_id"] for r in rows}) == 1


@pytest.mark.django_db
def test_clients_cannot_manage_availability(api, client_user, provider, service, at):
    res = api(client_user).post(
        reverse("availability_api:availability-list"), _body(service, at, provider=provider.id), format="json"
    )
    assert res.status_code == 403


@pytest.mark.django_db
def test_overlap_returns_409(api, provider_user, provider, service, at):
    client = api(provider_user)
    url = reverse("availability_api:availability-list")
    assert client.post(url, _body(service, at, provider=provider.id), format="json").status_code == 201

    res = client.post(
        url,
        _body(service, at, provider=provider.id, start=at(1, 10).isoformat(), end=at(1, 12).isoformat()),
        format="json",
    )
    assert res.status_code == 409
    body = res.json()
    assert body["code"] == "availability_overlap"
    assert body["detail"].startswith("Overlaps with existing availability")


@pytest.mark.django_db
def test_proposal_accept_and_reject_flow(api, manager_user, provider_user, organization, provider, service, at):
    url = reverse("availability_api:availability-list")
    res = api(manager_user).post(
        url, _body(service, at, provider=provider.id, organization=organization.id), format="json"
    )
    assert res.status_code == 201, res.content
    av_id = res.json()[0]["id"]
    assert res.json()[0]["status"] == "PENDING"

    # the organization cannot accept its own proposal
    forbidden = api(manager_user).post(reverse("availability_api:availability-accept", args=[av_id]))
    assert forbidden.status_code == 403
    assert forbidden.json()["code"] == "permission_denied"

    ok = api(provider_user).post(reverse("availability_api:availability-accept", args=[av_id]))
    assert ok.status_code == 200, ok.content
    assert ok.json()["slots_generated"] == 4

    again = api(provider_user).post(
        reverse("availability_api:availability-reject", args=[av_id]), {"reason": "late"}, format="json"
    )
    assert again.status_code == 409
    assert again.json()["code"] == "invalid_transition"


@pytest.mark.django_db
def test_patch_and_cancel(api, provider_user, provider, service, at):
    client = api(provider_user)
    created = client.post(
        reverse("availability_api:availability-list"), _body(service, at, provider=provider.id), format="json"
    ).json()[0]
    detail = reverse("availability_api:availability-detail", args=[created["id"]])

    res = client.patch(detail, {"end": at(1, 12).isoformat(), "requires_confirmation": True}, format="json")
    assert res.status_code == 200, res.content
    assert res.json()[0]["requires_confirmation"] is True

    av = Availability.objects.get(id=created["id"])
    av.slots.filter(start=at(1, 9)).update(status=SlotStatus.BOOKED)
    blocked = client.delete(detail)
    assert blocked.status_code == 409
    assert blocked.json()["code"] == "has_bookings"

    av.slots.update(status=SlotStatus.AVAILABLE)
    assert client.delete(detail + "?reason=Conference").status_code == 204
    av.refresh_from_db()
    assert av.status == AvailabilityStatus.CANCELLED
    assert av.cancellation_reason == "Conference"


@pytest.mark.django_db
def test_other_providers_cannot_see_my_calendar(api, provider_user, other_provider, provider, service, at):
    api(provider_user).post(
        reverse("availability_api:availability-list"), _body(service, at, provider=provider.id), format="json"
    )
    res = api(other_provider.user).get(reverse("availability_api:availability-list"))
    assert res.status_code == 200
    assert res.json()["results"] == []


@pytest.mark.django_db
def test_stats_endpoint(api, provider_user, provider, service, at):
    client = api(provider_user)
    client.post(reverse("availability_api:availability-list"), _body(service, at, provider=provider.id), format="json")

    res = client.get(reverse("availability_api:availability-stats"))
    assert res.status_code == 200
    body = res.json()
    assert body["slots"]["total"] == 4
    assert body["workflow"]["total_proposals"] == 0
