# apps/accounts/models.py
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """
    Project user model.
    - display_name: label shown to providers and clients
    - phone: WhatsApp-capable number; stored only, messages go out by email
    """
    display_name = models.CharField(max_length=150, blank=True, default="")
    phone = models.CharField(max_length=32, blank=True, default="")

    def __str__(self) -> str:  # type: ignore[override]
        return self.display_name or self.get_full_name() or self.username

    @property
    def role_names(self) -> list[str]:
        return list(self.role_bindings.values_list("role__name", flat=True))
