# apps/availability/services.py
"""
Availability lifecycle: create, edit, cancel and the proposal workflow.

Provider-created windows are ACCEPTED and bookable at once. Windows an
organization member creates for a provider are proposals: they stay PENDING
with no slots until the provider accepts them.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from django.db import transaction
from django.db.models import Count, F, Q
from django.utils import timezone

from apps.providers.access import can_manage_provider_calendar, is_platform_admin, is_provider_user

from .exceptions import (
    AvailabilityConflictError,
    AvailabilityError,
    AvailabilityPermissionError,
    AvailabilityValidationError,
    InvalidTransitionError,
)
from .models import (
    Availability,
    AvailabilityStatus,
    BillingEntity,
    BLOCKING_STATUSES,
    CalculatedSlot,
    SchedulingRule,
    ServiceAvailabilityConfig,
    SlotStatus,
)
from .recurrence import RecurrenceOption, generate_recurring_instances, is_valid_recurrence_pattern
from .scheduling import validate_scheduling_rule_config
from .slots import cleanup_slots, generate_slots_for_availability, regenerate_slots
from .validation import is_overlap, validate_availability

logger = logging.getLogger(__name__)


class Scope:
    SINGLE = "single"
    FUTURE = "future"
    ALL = "all"
    values = (SINGLE, FUTURE, ALL)


# ---- helpers ----

def _notify(availability_id: int, kind: str, **kwargs) -> None:
    """Queue a workflow email after commit; delivery problems never undo the change."""
    from .tasks import send_availability_notification

    def _send():
        try:
            send_availability_notification.delay(availability_id, kind, **kwargs)
        except Exception:
            logger.exception("Availability %s notification failed for #%s", kind, availability_id)

    transaction.on_commit(_send)


def _raise_for(errors: List[str]) -> None:
    if not errors:
        return
    clashes = [e for e in errors if is_overlap(e)]
    if clashes:
        raise AvailabilityConflictError(clashes[0], "availability_overlap", errors)
    raise AvailabilityValidationError(errors)


def _check_rule(rule: str, interval: Optional[int]) -> None:
    errors = validate_scheduling_rule_config(
        rule, interval=interval, align_to_hour=(rule == SchedulingRule.FIXED_INTERVAL)
    )
    if errors:
        raise AvailabilityValidationError(errors)


def _require_manager(actor, availability: Availability) -> None:
    if not can_manage_provider_calendar(actor, availability.provider, availability.organization):
        raise AvailabilityPermissionError()


def series_members(availability: Availability, scope: str = Scope.SINGLE):
    """The rows an edit or cancel touches, limited to calendar-holding ones."""
    if scope not in Scope.values:
        raise AvailabilityError(f"Unknown scope: {scope}", "invalid_scope")
    if scope == Scope.SINGLE or not availability.series_id:
        return Availability.objects.filter(id=availability.id)

    qs = Availability.objects.in_series(availability.series_id).filter(status__in=BLOCKING_STATUSES)
    if scope == Scope.FUTURE:
        qs = qs.filter(start__gte=availability.start)
    return qs.order_by("start")


def _write_configs(availability: Availability, services: Iterable[dict]) -> None:
    """Replace the availability's service configs with `services`."""
    keep = []
    for item in services:
        service = item["service"]
        cfg, _ = ServiceAvailabilityConfig.objects.update_or_create(
            availability=availability,
            service=service,
            defaults={
                "duration": item.get("duration") or service.default_duration,
                "price": item.get("price", service.default_price),
                "show_price": item.get("show_price", True),
                "is_online_available": item.get("is_online_available", False),
                "is_in_person": item.get("is_in_person", True),
                "location": item.get("location"),
            },
        )
        keep.append(cfg.id)
    availability.service_configs.exclude(id__in=keep).delete()


# ---- create ----

def create_availability(actor, data: dict) -> List[Availability]:
    """
    I create one window, or one row per occurrence for recurring data.
    Returns the created rows in start order; the first is the original.
    """
    provider = data["provider"]
    organization = data.get("organization")
    if not can_manage_provider_calendar(actor, provider, organization):
        raise AvailabilityPermissionError()

    services = list(data.get("services") or [])
    if not services:
        raise AvailabilityValidationError(["At least one service must be selected"])

    rule = data.get("scheduling_rule") or SchedulingRule.CONTINUOUS
    interval = data.get("scheduling_interval")
    _check_rule(rule, interval)

    start, end = data["start"], data["end"]
    pattern = data.get("recurrence_pattern")
    is_recurring = bool(pattern) and pattern.get("option", RecurrenceOption.NONE) != RecurrenceOption.NONE
    if is_recurring and not is_valid_recurrence_pattern(pattern):
        raise AvailabilityValidationError(["Invalid recurrence pattern"])

    instances = generate_recurring_instances(pattern, start, end) if is_recurring else [(start, end)]
    _raise_for(validate_availability(provider, start, end, instances=instances))

    # the provider (or a platform admin acting without an organization) skips the proposal step
    direct = is_provider_user(actor, provider) or (is_platform_admin(actor) and organization is None)
    status = AvailabilityStatus.ACCEPTED if direct else AvailabilityStatus.PENDING
    billing = data.get("billing_entity") or (
        BillingEntity.PROVIDER if direct else BillingEntity.ORGANIZATION
    )
    series_id = uuid.uuid4() if is_recurring else None
    now = timezone.now()

    created: List[Availability] = []
    with transaction.atomic():
        for occ_start, occ_end in instances:
            av = Availability.objects.create(
                provider=provider,
                organization=organization,
                location=data.get("location"),
                created_by=actor,
                accepted_by=actor if direct else None,
                accepted_at=now if direct else None,
                start=occ_start,
                end=occ_end,
                is_recurring=is_recurring,
                recurrence_pattern=pattern if is_recurring else None,
                series_id=series_id,
                scheduling_rule=rule,
                scheduling_interval=interval,
                is_online_available=data.get("is_online_available", False),
                requires_confirmation=data.get("requires_confirmation", False),
                billing_entity=billing,
                status=status,
            )
            _write_configs(av, services)
            if direct:
                generate_slots_for_availability(av)
            created.append(av)

    logger.info(
        "Created %s availability row(s) for provider %s as %s", len(created), provider.id, status
    )
    if not direct:
        _notify(created[0].id, "proposed")
    return created


# ---- update ----

def _booking_guard(target: Availability, new_start: datetime, new_end: datetime, service_ids) -> None:
    booked = CalculatedSlot.objects.filter(availability=target).booked()
    if not booked.exists():
        return
    if booked.filter(Q(start__lt=new_start) | Q(end__gt=new_end)).exists():
        raise AvailabilityConflictError(
            "Cannot modify availability: new time range would exclude existing bookings",
            "bookings_outside_window",
        )
    if service_ids is not None:
        for sid in booked.values_list("service_id", flat=True).distinct():
            if sid not in service_ids:
                raise AvailabilityConflictError(
                    f"Cannot remove service with ID {sid} as it has existing bookings",
                    "service_has_bookings",
                )


def update_availability(actor, availability: Availability, data: dict, scope: str = Scope.SINGLE) -> List[Availability]:
    """
    I apply `data` to the scoped rows. Time changes shift every scoped row by
    the same delta; bookings must stay inside the new windows.
    """
    _require_manager(actor, availability)
    if availability.status not in BLOCKING_STATUSES:
        raise InvalidTransitionError("Cannot edit a cancelled or rejected availability")

    rule = data.get("scheduling_rule", availability.scheduling_rule)
    interval = data.get("scheduling_interval", availability.scheduling_interval)
    _check_rule(rule, interval)

    services = data.get("services")
    if services is not None and not services:
        raise AvailabilityValidationError(["At least one service must be selected"])
    service_ids = {s["service"].id for s in services} if services is not None else None

    delta_start = data.get("start", availability.start) - availability.start
    delta_end = data.get("end", availability.end) - availability.end
    times_changed = bool(delta_start) or bool(delta_end)

    targets = list(series_members(availability, scope))
    target_ids = [t.id for t in targets]
    windows = {t.id: (t.start + delta_start, t.end + delta_end) for t in targets}

    for t in targets:
        _booking_guard(t, *windows[t.id], service_ids)

    if times_changed:
        # the shifted rows are checked against the calendar and against each other
        shifted = [windows[t.id] for t in targets]
        _raise_for(validate_availability(
            availability.provider, *windows[availability.id], instances=shifted, exclude_ids=target_ids
        ))

    simple_fields = ("is_online_available", "requires_confirmation", "billing_entity", "location")
    with transaction.atomic():
        for t in targets:
            t.start, t.end = windows[t.id]
            t.scheduling_rule = rule
            t.scheduling_interval = interval
            for name in simple_fields:
                if name in data:
                    setattr(t, name, data[name])
            t.save()
            if services is not None:
                _write_configs(t, services)
            if t.status == AvailabilityStatus.ACCEPTED:
                regenerate_slots(t)

    logger.info("Updated %s availability row(s) from #%s (scope=%s)", len(targets), availability.id, scope)
    return targets


# ---- cancel ----

def cancel_availability(actor, availability: Availability, scope: str = Scope.SINGLE, reason: str = "") -> List[Availability]:
    _require_manager(actor, availability)
    if not availability.can_transition_to(AvailabilityStatus.CANCELLED):
        raise InvalidTransitionError(f"Cannot cancel an availability that is {availability.status.lower()}")

    targets = list(series_members(availability, scope))
    booked = CalculatedSlot.objects.filter(
        availability__in=targets, status=SlotStatus.BOOKED
    ).count()
    if booked:
        raise AvailabilityConflictError(
            f"Cannot cancel availability with {booked} existing booking(s). Cancel the bookings first.",
            "has_bookings",
        )

    with transaction.atomic():
        for t in targets:
            t.status = AvailabilityStatus.CANCELLED
            t.cancellation_reason = reason or ""
            t.save(update_fields=["status", "cancellation_reason", "updated_at"])
            cleanup_slots(t)

    _notify(availability.id, "cancelled", reason=reason or "")
    logger.info("Cancelled %s availability row(s) from #%s", len(targets), availability.id)
    return targets


# ---- proposal workflow ----

def _accept_one(actor, availability: Availability) -> Dict:
    availability.status = AvailabilityStatus.ACCEPTED
    availability.accepted_by = actor
    availability.accepted_at = timezone.now()
    availability.save(update_fields=["status", "accepted_by", "accepted_at", "updated_at"])
    return generate_slots_for_availability(availability, force_regenerate=True)


def accept_availability(actor, availability: Availability) -> Dict:
    if not is_provider_user(actor, availability.provider):
        raise AvailabilityPermissionError("Only the assigned provider can accept this proposal")
    if availability.status != AvailabilityStatus.PENDING:
        raise InvalidTransitionError("Availability is not pending acceptance")

    with transaction.atomic():
        result = _accept_one(actor, availability)

    _notify(availability.id, "accepted", slots_generated=result["slots_generated"])
    return {"availability": availability.id, **result}


def reject_availability(actor, availability: Availability, reason: str = "") -> Availability:
    if not is_provider_user(actor, availability.provider):
        raise AvailabilityPermissionError("Only the assigned provider can reject this proposal")
    if availability.status != AvailabilityStatus.PENDING:
        raise InvalidTransitionError("Availability is not pending response")

    availability.status = AvailabilityStatus.REJECTED
    availability.rejection_reason = reason or ""
    availability.save(update_fields=["status", "rejection_reason", "updated_at"])

    _notify(availability.id, "rejected", reason=reason or "")
    return availability


def accept_series(actor, availability: Availability, mode: str = "all") -> Dict:
    """Accept every PENDING row of the series, or only those not yet started."""
    if mode not in ("all", "future_only"):
        raise AvailabilityError(f"Unknown acceptance mode: {mode}", "invalid_mode")
    if not is_provider_user(actor, availability.provider):
        raise AvailabilityPermissionError("Only the assigned provider can accept this proposal")

    if availability.series_id:
        pending = Availability.objects.in_series(availability.series_id)
    else:
        pending = Availability.objects.filter(id=availability.id)
    pending = pending.filter(status=AvailabilityStatus.PENDING)
    if mode == "future_only":
        pending = pending.filter(start__gte=timezone.now())
    pending = list(pending.order_by("start"))
    if not pending:
        raise InvalidTransitionError("No pending availability in this series")

    generated = 0
    with transaction.atomic():
        for av in pending:
            generated += _accept_one(actor, av)["slots_generated"]

    _notify(pending[0].id, "accepted", slots_generated=generated)
    return {"accepted": len(pending), "slots_generated": generated, "mode": mode}


# ---- statistics ----

def workflow_statistics(provider=None, organization=None) -> Dict:
    qs = Availability.objects.all()
    if provider is not None:
        qs = qs.filter(provider=provider)
    if organization is not None:
        qs = qs.filter(organization=organization)
    # proposals are rows somebody other than the provider created
    proposals = qs.exclude(created_by=F("provider__user"))

    stats = proposals.aggregate(
        total_proposals=Count("id"),
        pending=Count("id", filter=Q(status=AvailabilityStatus.PENDING)),
        accepted=Count("id", filter=Q(status=AvailabilityStatus.ACCEPTED)),
        rejected=Count("id", filter=Q(status=AvailabilityStatus.REJECTED)),
        cancelled=Count("id", filter=Q(status=AvailabilityStatus.CANCELLED)),
    )
    slots = CalculatedSlot.objects.filter(availability__in=qs)
    totals = slots.aggregate(
        generated=Count("id"),
        booked=Count("id", filter=Q(status=SlotStatus.BOOKED)),
    )
    stats["slots_generated"] = totals["generated"]
    stats["slots_booked"] = totals["booked"]
    stats["utilization_rate"] = (
        round(totals["booked"] / totals["generated"], 4) if totals["generated"] else 0.0
    )
    return stats
