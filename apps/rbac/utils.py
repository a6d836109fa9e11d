# apps/rbac/utils.py
from typing import Iterable, Set

from apps.rbac.permissions import _norm


def user_roles(user) -> Set[str]:
    """Normalized set of role names bound to the user (empty when anonymous)."""
    if not getattr(user, "is_authenticated", False):
        return set()
    qs = user.role_bindings.select_related("role").values_list("role__name", flat=True)
    return {_norm(r) for r in qs}


def has_role(user, *roles: Iterable[str], allow_superuser: bool = True) -> bool:
    """
    Plain helper for service code: does the user have ANY of the given roles?
        if has_role(actor, "admin"): ...
    """
    if not getattr(user, "is_authenticated", False):
        return False
    if allow_superuser and getattr(user, "is_superuser", False):
        return True

    required = {_norm(r) for r in roles if isinstance(r, str) and r.strip()}
    if not required:
        return True

    roles_set = user_roles(user)
    if "admin" in roles_set:
        return True
    return bool(roles_set & required)


def grant_role(user, name: str):
    from apps.rbac.models import Role, RoleBinding

    role, _ = Role.objects.get_or_create(name=_norm(name))
    binding, _ = RoleBinding.objects.get_or_create(user=user, role=role)
    return binding
