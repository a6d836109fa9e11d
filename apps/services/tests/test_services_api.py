import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from apps.services.models import Service


@pytest.mark.django_db
def test_slug_is_unique_per_name():
    a = Service.objects.create(name="Consultation")
    b = Service.objects.create(name="Consultation")
    assert a.slug == "consultation"
    assert b.slug == "consultation-2"


@pytest.mark.django_db
def test_catalog_lists_active_services_by_priority():
    Service.objects.create(name="Zeta check", display_priority=1)
    Service.objects.create(name="Alpha check", display_priority=1)
    Service.objects.create(name="First", display_priority=0)
    Service.objects.create(name="Hidden", is_active=False)

    res = APIClient().get(reverse("services_api:service-list"))
    assert res.status_code == 200
    names = [row["name"] for row in res.json()["results"]]
    assert names == ["First", "Alpha check", "Zeta check"]
