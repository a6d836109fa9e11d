from decimal import Decimal

import pytest

from apps.availability.models import (
    Availability,
    AvailabilityStatus,
    CalculatedSlot,
    ServiceAvailabilityConfig,
)
from apps.availability.slots import generate_slots_for_availability


@pytest.fixture
def open_window(provider, service, location, at):
    """Accepted 09:00-11:00 window tomorrow, 30-minute slots, online and in person."""
    av = Availability.objects.create(
        provider=provider,
        created_by=provider.user,
        location=location,
        start=at(1, 9),
        end=at(1, 11),
        status=AvailabilityStatus.ACCEPTED,
        is_online_available=True,
    )
    ServiceAvailabilityConfig.objects.create(
        availability=av,
        service=service,
        duration=30,
        price=Decimal("450.00"),
        is_online_available=True,
        is_in_person=True,
    )
    generate_slots_for_availability(av)
    return av


@pytest.fixture
def first_slot(open_window):
    return CalculatedSlot.objects.filter(availability=open_window).order_by("start").first()
