# apps/availability/slots.py
"""
Persisting calculated slots for availability windows.

Booked slots are never deleted or moved here: regeneration rebuilds the
unbooked part of a window around them, and cleanup marks them INVALID.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from django.db import transaction
from django.db.models import Count, Max, Q
from django.utils import timezone

from .models import (
    Availability,
    BLOCKING_STATUSES,
    CalculatedSlot,
    SchedulingRule,
    SlotStatus,
)
from .scheduling import HOUR, generate_time_slots

logger = logging.getLogger(__name__)

# slots of other windows that still hold calendar time
LIVE_SLOT_STATUSES = (SlotStatus.AVAILABLE, SlotStatus.BOOKED, SlotStatus.BLOCKED)


def _provider_conflicts(availability: Availability, start: datetime, end: datetime) -> bool:
    return (
        CalculatedSlot.objects.overlapping(start, end)
        .filter(
            availability__provider_id=availability.provider_id,
            availability__status__in=BLOCKING_STATUSES,
            status__in=LIVE_SLOT_STATUSES,
        )
        .exclude(availability_id=availability.id)
        .exists()
    )


def _build_slots(
    availability: Availability,
    *,
    avoid: Iterable[CalculatedSlot] = (),
    version: int = 1,
) -> Dict:
    """Carve every service config; returns unsaved slots plus counters."""
    avoid = list(avoid)
    align = HOUR if availability.scheduling_rule == SchedulingRule.FIXED_INTERVAL else None
    out: List[CalculatedSlot] = []
    conflicted = 0
    errors: List[str] = []

    configs = availability.service_configs.select_related("service")
    for cfg in configs:
        carved = generate_time_slots(
            availability.start,
            availability.end,
            cfg.duration,
            availability.scheduling_rule,
            interval=availability.scheduling_interval,
            align=align,
        )
        if carved.errors:
            errors.extend(f"{cfg.service}: {e}" for e in carved.errors)
            continue

        for ts in carved.slots:
            if any(b.start < ts.end and ts.start < b.end for b in avoid):
                conflicted += 1
                continue
            if _provider_conflicts(availability, ts.start, ts.end):
                conflicted += 1
                continue
            out.append(
                CalculatedSlot(
                    availability=availability,
                    service_id=cfg.service_id,
                    service_config=cfg,
                    start=ts.start,
                    end=ts.end,
                    duration=ts.duration,
                    price=cfg.price,
                    is_online_available=cfg.is_online_available and availability.is_online_available,
                    status=SlotStatus.AVAILABLE,
                    version=version,
                )
            )
    return {"slots": out, "conflicted": conflicted, "errors": errors}


@transaction.atomic
def generate_slots_for_availability(availability: Availability, force_regenerate: bool = False) -> Dict:
    """
    I carve and persist AVAILABLE slots for every service config of the window.
    Existing slots make me refuse unless `force_regenerate` is set, in which
    case the rebuild preserves booked slots.
    """
    existing = CalculatedSlot.objects.filter(availability=availability)
    if existing.exists():
        if not force_regenerate:
            return {
                "slots_generated": 0,
                "slots_conflicted": 0,
                "errors": ["Slots already exist. Use force_regenerate to regenerate."],
            }
        return regenerate_slots(availability)

    built = _build_slots(availability)
    CalculatedSlot.objects.bulk_create(built["slots"])
    logger.info(
        "Generated %s slot(s) for availability %s (%s conflicted)",
        len(built["slots"]), availability.id, built["conflicted"],
    )
    return {
        "slots_generated": len(built["slots"]),
        "slots_conflicted": built["conflicted"],
        "errors": built["errors"],
    }


@transaction.atomic
def regenerate_slots(availability: Availability) -> Dict:
    """
    Rebuild slots after an edit. Without bookings everything is replaced;
    with bookings only unbooked slots go and new candidates that overlap a
    booked slot are skipped.
    """
    slots = CalculatedSlot.objects.filter(availability=availability)
    next_version = (slots.aggregate(v=Max("version"))["v"] or 0) + 1
    booked = list(slots.booked())

    deleted, _ = slots.unbooked().delete()
    built = _build_slots(availability, avoid=booked, version=next_version)
    CalculatedSlot.objects.bulk_create(built["slots"])

    logger.info(
        "Regenerated availability %s: removed %s, kept %s booked, created %s",
        availability.id, deleted, len(booked), len(built["slots"]),
    )
    return {
        "slots_generated": len(built["slots"]),
        "slots_conflicted": built["conflicted"],
        "slots_preserved": len(booked),
        "errors": built["errors"],
    }


@transaction.atomic
def cleanup_slots(availability: Availability) -> Dict:
    """Delete unbooked slots and flag booked ones INVALID."""
    slots = CalculatedSlot.objects.filter(availability=availability)
    deleted, _ = slots.unbooked().delete()
    invalidated = slots.booked().update(status=SlotStatus.INVALID, last_calculated=timezone.now())
    return {"deleted": deleted, "invalidated": invalidated}


def release_overlapping_blocks(slot: CalculatedSlot) -> int:
    """
    Re-open sibling slots that were BLOCKED by `slot` once it is free again,
    unless another booked slot still covers them.
    """
    provider_id = slot.availability.provider_id
    reopened = 0
    blocked = (
        CalculatedSlot.objects.overlapping(slot.start, slot.end)
        .filter(availability__provider_id=provider_id, status=SlotStatus.BLOCKED)
        .exclude(id=slot.id)
    )
    for other in blocked:
        still_covered = (
            CalculatedSlot.objects.overlapping(other.start, other.end)
            .filter(availability__provider_id=provider_id, status=SlotStatus.BOOKED)
            .exclude(id=other.id)
            .exists()
        )
        if not still_covered:
            other.status = SlotStatus.AVAILABLE
            other.save(update_fields=["status", "last_calculated"])
            reopened += 1
    return reopened


def block_overlapping(slot: CalculatedSlot) -> int:
    """Block AVAILABLE slots of the same provider that overlap a just-booked slot."""
    return (
        CalculatedSlot.objects.overlapping(slot.start, slot.end)
        .filter(availability__provider_id=slot.availability.provider_id, status=SlotStatus.AVAILABLE)
        .exclude(id=slot.id)
        .update(status=SlotStatus.BLOCKED, last_calculated=timezone.now())
    )


def slot_statistics(provider, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> Dict:
    qs = CalculatedSlot.objects.filter(availability__provider=provider)
    if date_from:
        qs = qs.filter(start__gte=date_from)
    if date_to:
        qs = qs.filter(start__lt=date_to)

    counts = qs.aggregate(
        total=Count("id"),
        available=Count("id", filter=Q(status=SlotStatus.AVAILABLE)),
        booked=Count("id", filter=Q(status=SlotStatus.BOOKED)),
        blocked=Count("id", filter=Q(status=SlotStatus.BLOCKED)),
        invalid=Count("id", filter=Q(status=SlotStatus.INVALID)),
    )
    bookable = counts["available"] + counts["booked"]
    counts["utilization_rate"] = round(counts["booked"] / bookable, 4) if bookable else 0.0
    return counts
