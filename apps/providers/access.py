# apps/providers/access.py
"""
Calendar access rules shared by availability and booking services.
"""
from __future__ import annotations

from apps.rbac.utils import user_roles

from .models import OrganizationMembership


def is_platform_admin(user) -> bool:
    if not getattr(user, "is_authenticated", False):
        return False
    return bool(user.is_superuser or "admin" in user_roles(user))


def is_provider_user(user, provider) -> bool:
    return bool(getattr(user, "is_authenticated", False) and provider.user_id == user.id)


def is_calendar_manager(user, organization) -> bool:
    if organization is None or not getattr(user, "is_authenticated", False):
        return False
    return OrganizationMembership.objects.filter(
        user=user,
        organization=organization,
        role__in=OrganizationMembership.CALENDAR_MANAGERS,
    ).exists()


def can_manage_provider_calendar(user, provider, organization=None) -> bool:
    """
    I allow the provider's own user, platform admins, and OWNER/ADMIN/MANAGER
    members of `organization` when one is given.
    """
    if is_provider_user(user, provider) or is_platform_admin(user):
        return True
    return is_calendar_manager(user, organization)
