import pytest
from django.contrib.auth import get_user_model
from django.test import RequestFactory

from apps.audit.models import AuditEvent
from apps.audit.utils import log_event


@pytest.mark.django_db
def test_log_event_captures_actor_ip_and_agent():
    user = get_user_model().objects.create_user(username="auditor", password="x-pass-123")
    request = RequestFactory().post(
        "/api/v1/bookings/",
        HTTP_X_FORWARDED_FOR="203.0.113.9, 10.0.0.1",
        HTTP_USER_AGENT="pytest-agent",
    )
    request.user = user

    ev = log_event(request, "booking.create", "Booking", 42)

    assert ev.actor == user
    assert ev.ip == "203.0.113.9"
    assert ev.user_agent == "pytest-agent"
    assert ev.object_id == "42"


@pytest.mark.django_db
def test_log_event_without_request():
    log_event(None, "reminders.sent", "Booking", 0)
    ev = AuditEvent.objects.get()
    assert ev.actor is None
    assert ev.ip is None
    assert ev.object_id == "0"
