# apps/services/models.py
from decimal import Decimal

from django.db import models
from django.utils.text import slugify


class ServiceQuerySet(models.QuerySet):
    def active(self) -> "ServiceQuerySet":
        return self.filter(is_active=True)

    def for_listing(self) -> "ServiceQuerySet":
        return self.active().order_by("display_priority", "name")


class Service(models.Model):
    """
    A bookable service type (e.g. "Initial consultation"). Providers copy the
    defaults into a per-availability config and may override them there.
    """
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=220, unique=True, blank=True)
    description = models.TextField(blank=True, default="")

    default_duration = models.PositiveIntegerField(default=30, help_text="Minutes")
    default_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    display_priority = models.IntegerField(default=0, db_index=True)
    is_active = models.BooleanField(default=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ServiceQuerySet.as_manager()

    class Meta:
        ordering = ["display_priority", "name"]

    def __str__(self) -> str:
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            base = slugify(self.name) or "service"
            slug = base
            i = 2
            while Service.objects.filter(slug=slug).exclude(pk=self.pk).exists():
                slug = f"{base}-{i}"
                i += 1
            self.slug = slug
        super().save(*args, **kwargs)
