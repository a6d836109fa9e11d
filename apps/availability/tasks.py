# apps/availability/tasks.py
from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import EmailMessage
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string
from django.utils import timezone

from .models import Availability
from .recurrence import describe_recurrence

logger = logging.getLogger(__name__)

KINDS = ("proposed", "accepted", "rejected", "cancelled")


def _render_subject_and_body(kind: str, ctx: dict) -> tuple[str, str]:
    """'Subject: ...' on line 1, the rest is the body."""
    try:
        raw = render_to_string(f"emails/availability/{kind}.txt", ctx)
    except TemplateDoesNotExist:
        return "Availability update", "An availability on your calendar was updated."
    lines = raw.splitlines()
    subject = lines[0].replace("Subject:", "").strip() if lines else ""
    body = "\n".join(lines[1:]).strip()
    return subject or "Availability update", body or "An availability on your calendar was updated."


def _recipients(av: Availability, kind: str) -> list[str]:
    provider_email = av.provider.contact_email
    creator_email = getattr(av.created_by, "email", "") if av.created_by_id else ""
    org_email = av.organization.email if av.organization_id else ""

    if kind == "proposed":
        found = [provider_email]
    elif kind in ("accepted", "rejected"):
        found = [creator_email, org_email]
    else:
        found = [provider_email, creator_email]
    # de-dupe, keep order
    return list(dict.fromkeys(e for e in found if e))


@shared_task(bind=True, max_retries=2)
def send_availability_notification(self, availability_id: int, kind: str, reason: str = "", slots_generated: int = 0):
    """Email the other side of a proposal workflow step."""
    if kind not in KINDS:
        raise ValueError(f"unknown availability notification kind: {kind}")
    if not getattr(settings, "NOTIFY_BOOKINGS", True):
        return {"skipped": True, "reason": "notifications disabled"}

    av = (
        Availability.objects.select_related("provider__user", "organization", "created_by")
        .prefetch_related("service_configs__service")
        .get(id=availability_id)
    )
    to_list = _recipients(av, kind)
    if not to_list:
        return {"skipped": True, "reason": "no recipient email", "availability": av.id}

    start_local = timezone.localtime(av.start)
    ctx = {
        "provider_name": av.provider.name,
        "organization_name": av.organization.name if av.organization_id else "your organization",
        "start_local": start_local.strftime("%a, %d %b %Y %H:%M"),
        "end_local": timezone.localtime(av.end).strftime("%H:%M"),
        "tzname": start_local.tzname() or "UTC",
        "recurrence": describe_recurrence(av.recurrence_pattern),
        "services": ", ".join(c.service.name for c in av.service_configs.all()),
        "reason": reason,
        "slots_generated": slots_generated,
    }
    subject, body = _render_subject_and_body(kind, ctx)

    EmailMessage(
        subject=subject,
        body=body,
        from_email=getattr(settings, "DEFAULT_FROM_EMAIL", "no-reply@medbookings.local"),
        to=to_list,
    ).send(fail_silently=False)
    logger.info("Sent availability %s notification for #%s to %s", kind, av.id, to_list)
    return {"sent": True, "to": to_list, "kind": kind, "availability": av.id}
