# conftest.py
from datetime import datetime, time, timedelta

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from apps.providers.models import Location, Organization, OrganizationMembership, Provider
from apps.rbac.utils import grant_role
from apps.services.models import Service


def _at(days_ahead: int, hour: int, minute: int = 0):
    """Aware datetime `days_ahead` days from today at hour:minute local time."""
    day = timezone.localdate() + timedelta(days=days_ahead)
    return timezone.make_aware(datetime.combine(day, time(hour, minute)))


@pytest.fixture
def at():
    return _at


@pytest.fixture
def make_user(db):
    def _make(username, *roles, **extra):
        extra.setdefault("email", f"{username}@example.com")
        user = get_user_model().objects.create_user(username=username, password="pw-123456!", **extra)
        for role in roles:
            grant_role(user, role)
        return user
    return _make


@pytest.fixture
def provider_user(make_user):
    return make_user("dr_naidoo", "provider", display_name="Dr Naidoo")


@pytest.fixture
def provider(provider_user):
    return Provider.objects.create(user=provider_user, name="Dr Naidoo", email="naidoo@clinic.example")


@pytest.fixture
def other_provider(make_user):
    user = make_user("dr_smith", "provider")
    return Provider.objects.create(user=user, name="Dr Smith")


@pytest.fixture
def organization(db):
    return Organization.objects.create(name="Sunrise Clinic", email="desk@sunrise.example")


@pytest.fixture
def location(organization):
    return Location.objects.create(organization=organization, name="Sunrise Rosebank", address="1 Main Rd")


@pytest.fixture
def manager_user(make_user, organization):
    user = make_user("clinic_mgr", "organization")
    OrganizationMembership.objects.create(
        user=user, organization=organization, role=OrganizationMembership.Role.MANAGER
    )
    return user


@pytest.fixture
def client_user(make_user):
    return make_user("patient_p", "client", display_name="Pat Client")


@pytest.fixture
def service(db):
    return Service.objects.create(name="Consultation", default_duration=30, default_price="450.00")


@pytest.fixture
def api():
    def _api(user=None):
        c = APIClient()
        if user is not None:
            c.force_authenticate(user=user)
        return c
    return _api
