# apps/rbac/permissions.py
from typing import Iterable, Set

from rest_framework.permissions import BasePermission


def _norm(s: str) -> str:
    """I normalize role names for reliable comparisons."""
    return (s or "").strip().lower()


class HasRole(BasePermission):
    """
    I gate an endpoint by role names. The roles_required() factory below
    sets `required_roles`.

    - Superusers always pass (allow_superuser).
    - The 'admin' role passes everything.
    - Role matching is case-insensitive.
    """

    message = "You do not have permission to perform this action."
    required_roles: Set[str] = set()
    admin_role: str = "admin"
    allow_superuser: bool = True

    def has_permission(self, request, view) -> bool:
        if not self.required_roles:
            return True

        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False

        if self.allow_superuser and getattr(user, "is_superuser", False):
            return True

        # imported here so rbac.utils can import _norm from this module
        from apps.rbac.utils import user_roles

        roles = user_roles(user)
        if self.admin_role in roles:
            return True

        return bool(roles & self.required_roles)

    def has_object_permission(self, request, view, obj) -> bool:
        return self.has_permission(request, view)


def roles_required(*roles: Iterable[str]):
    """
    I return a concrete DRF permission class that requires ANY of the given roles.

    Usage:
        permission_classes = [IsAuthenticated, roles_required("provider", "organization")]
    """
    required = {_norm(r) for r in roles if isinstance(r, str) and r.strip()}

    class RolesRequired(HasRole):
        required_roles = required

    return RolesRequired
