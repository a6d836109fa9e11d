# apps/audit/utils.py
from apps.audit.models import AuditEvent


def _client_ip(request) -> str | None:
    meta = getattr(request, "META", None) or {}
    xff = meta.get("HTTP_X_FORWARDED_FOR")
    if xff:
        return xff.split(",")[0].strip()
    return meta.get("REMOTE_ADDR") or None


def log_event(request, action: str, object_type: str = "", object_id: str | int | None = None):
    """
    I write one audit row. `request` may be None (e.g. auth backends called
    outside a view or from tasks); then only the action and object are stored.
    """
    user = getattr(request, "user", None)
    meta = getattr(request, "META", None) or {}
    return AuditEvent.objects.create(
        actor=user if user is not None and user.is_authenticated else None,
        action=action,
        object_type=object_type,
        object_id=str(object_id if object_id is not None else ""),
        ip=_client_ip(request),
        user_agent=meta.get("HTTP_USER_AGENT", ""),
    )
